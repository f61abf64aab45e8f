import logging
from typing import Literal

from fastapi import APIRouter, Query

from confirmation_engine.schemas.confirmation import ParsedConfirmationFieldsV1, ParseInput
from confirmation_engine.services.confirmation_hybrid import parse_confirmation_fields_smart
from confirmation_engine.services.confirmation_parser.service import parse_confirmation_fields

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/confirmations/parse-fields",
    response_model=ParsedConfirmationFieldsV1,
    summary="Extract supplier order number, delivery date and quantity from confirmation evidence",
)
async def parse_fields_endpoint(
    body: ParseInput,
    mode: Literal["deterministic", "hybrid"] = Query(default="hybrid"),
):
    logger.info(
        "parse-fields po=%s line=%s pdfs=%d email=%s mode=%s",
        body.po_number,
        body.line_id,
        len(body.pdf_texts),
        body.has_email_text(),
        mode,
    )
    if mode == "deterministic":
        return parse_confirmation_fields(body)
    return await parse_confirmation_fields_smart(body)
