from fabquote.backoffice.models.attachment import Attachment
from fabquote.backoffice.models.cad_version import CadFileVersion
from fabquote.backoffice.models.conversion import (
    ACTIVE_CONVERSION_STATUSES,
    ConversionStatus,
    EntityKind,
)
from fabquote.backoffice.models.event_log import EventLog
from fabquote.backoffice.models.note import Note
from fabquote.backoffice.models.order import (
    Order,
    OrderAttachment,
    OrderLineItem,
    OrderStatus,
    Part,
    PartDrawing,
)
from fabquote.backoffice.models.quote import (
    CONVERTIBLE_QUOTE_STATUSES,
    Quote,
    QuoteAttachment,
    QuoteLineItem,
    QuotePart,
    QuotePartDrawing,
    QuoteStatus,
)
from fabquote.backoffice.models.runtime_setting import RuntimeSetting

__all__ = [
    "ACTIVE_CONVERSION_STATUSES",
    "Attachment",
    "CadFileVersion",
    "CONVERTIBLE_QUOTE_STATUSES",
    "ConversionStatus",
    "EntityKind",
    "EventLog",
    "Note",
    "Order",
    "OrderAttachment",
    "OrderLineItem",
    "OrderStatus",
    "Part",
    "PartDrawing",
    "Quote",
    "QuoteAttachment",
    "QuoteLineItem",
    "QuotePart",
    "QuotePartDrawing",
    "QuoteStatus",
    "RuntimeSetting",
]
