"""Pydantic schemas."""

from pedidolist.core.enums import EntityType
from pedidolist.schemas.order import OrderPayload
from pedidolist.schemas.product import ProductPayload

PAYLOAD_SCHEMAS = {
    EntityType.ORDER: OrderPayload,
    EntityType.PRODUCT: ProductPayload,
}


def normalize_payload(entity_type: EntityType, data: dict) -> dict:
    """Validate *data* against the entity schema and return its canonical JSON form.

    Unknown keys (server metadata, ids) are dropped, money is quantized to
    cents and dates become ISO strings, so two payloads compare equal exactly
    when their business content is equal.
    """
    schema = PAYLOAD_SCHEMAS[EntityType(entity_type)]
    return schema.model_validate(data).model_dump(mode="json")
