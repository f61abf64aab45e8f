"""Confirmation parsing schemas: parse input, per-field provenance and the aggregate result."""

from __future__ import annotations

from typing import Generic, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

T = TypeVar("T")

EvidenceSource = Literal["pdf", "email", "none"]
ExtractionMethod = Literal["deterministic", "llm", "hybrid"]
Quantity = Union[int, float]


class ParsedField(BaseModel, Generic[T]):
    """A single extracted value with confidence and provenance.

    A field without evidence is ``value=None, confidence=0.0`` and carries no
    snippet; a field with a value always has positive confidence.
    """

    value: Optional[T] = None
    confidence: float = 0.0
    evidence_snippet: Optional[str] = None
    source: EvidenceSource = "none"
    attachment_id: Optional[str] = None
    message_id: Optional[str] = None

    @model_validator(mode="after")
    def _null_value_means_no_evidence(self):
        if not 0.0 <= self.confidence <= 1.0:
            msg = f"Confidence must be 0.0-1.0, got {self.confidence}"
            raise ValueError(msg)
        if self.value is None:
            if self.confidence != 0.0 or self.evidence_snippet is not None:
                raise ValueError("Empty field must have confidence 0 and no evidence snippet")
        elif self.confidence == 0.0:
            raise ValueError("Populated field must have confidence > 0")
        return self


class PdfText(BaseModel):
    attachment_id: str
    text: Optional[str] = None


class ParseInput(BaseModel):
    """Evidence plus read-only purchase-order context for one parse call."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    po_number: Optional[str] = Field(default=None, alias="poNumber")
    line_id: Optional[str] = Field(default=None, alias="lineId")
    email_text: Optional[str] = Field(default=None, alias="emailText")
    email_message_id: Optional[str] = Field(default=None, alias="emailMessageId")
    pdf_texts: list[PdfText] = Field(default_factory=list, alias="pdfTexts")
    debug: bool = False
    expected_qty: Optional[Quantity] = Field(default=None, alias="expectedQty")
    expected_unit_price: Optional[float] = Field(default=None, alias="expectedUnitPrice")

    @field_validator("po_number", "line_id", mode="before")
    @classmethod
    def _stringify_identifier(cls, v):
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    def has_pdf_text(self) -> bool:
        return any((p.text or "").strip() for p in self.pdf_texts)

    def has_email_text(self) -> bool:
        return bool((self.email_text or "").strip())


class QuantityMismatch(BaseModel):
    value: Optional[bool] = None
    reason: str = ""


class PriceChanged(BaseModel):
    value: Optional[bool] = None
    price_delta: Optional[float] = None
    price_delta_percent: Optional[float] = None


class DateCandidateTrace(BaseModel):
    value: str
    confidence: float
    label: str
    priority: int
    origin: str
    source: EvidenceSource
    attachment_id: Optional[str] = None
    evidence_snippet: str = ""


class QuantityCandidateTrace(BaseModel):
    value: Quantity
    confidence: float
    label: str
    priority: int
    origin: str
    source: EvidenceSource
    excluded: bool = False
    exclusion_reason: Optional[str] = None
    near_weight_unit: bool = False
    attachment_id: Optional[str] = None
    evidence_snippet: str = ""


class OrderNumberCandidateTrace(BaseModel):
    value: str
    confidence: float
    label: str
    origin: str
    source: EvidenceSource
    attachment_id: Optional[str] = None
    evidence_snippet: str = ""


class DebugCandidates(BaseModel):
    date_candidates: list[DateCandidateTrace] = []
    qty_candidates: list[QuantityCandidateTrace] = []
    order_number_candidates: list[OrderNumberCandidateTrace] = []
    date_chosen_reason: str = ""
    qty_chosen_reason: str = ""
    llm_decision: str = ""


class ParsedConfirmationFieldsV1(BaseModel):
    supplier_order_number: ParsedField[str] = ParsedField[str]()
    confirmed_delivery_date: ParsedField[str] = ParsedField[str]()
    # Older name of supplier_confirmed_quantity; both always carry the same value.
    confirmed_quantity: ParsedField[Quantity] = ParsedField[Quantity]()
    ordered_quantity: ParsedField[Quantity] = ParsedField[Quantity]()
    supplier_confirmed_quantity: ParsedField[Quantity] = ParsedField[Quantity]()
    quantity_mismatch: QuantityMismatch = QuantityMismatch()
    evidence_source: EvidenceSource = "none"
    raw_excerpt: Optional[str] = None
    missing_fields: list[str] = []
    extraction_method: ExtractionMethod = "deterministic"
    debug_candidates: Optional[DebugCandidates] = None

    unit_price: Optional[ParsedField[float]] = None
    extended_price: Optional[ParsedField[float]] = None
    currency: Optional[ParsedField[str]] = None
    payment_terms: Optional[ParsedField[str]] = None
    freight_terms: Optional[ParsedField[str]] = None
    freight_cost: Optional[ParsedField[float]] = None
    subtotal: Optional[ParsedField[float]] = None
    tax_amount: Optional[ParsedField[float]] = None
    order_total: Optional[ParsedField[float]] = None
    notes: Optional[ParsedField[str]] = None
    backorder_status: Optional[ParsedField[str]] = None
    price_changed: Optional[PriceChanged] = None
