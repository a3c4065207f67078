"""Exceptions raised while processing webhooks."""


class WebhookProcessingError(Exception):
    """Base class for failures while applying a webhook to domain records."""


class UnknownEventTypeError(WebhookProcessingError):
    """A processor received an event type outside its taxonomy."""

    def __init__(self, processor: str, event_type: str):
        self.processor = processor
        self.event_type = event_type
        super().__init__(f"{processor} processor has no handler for event type '{event_type}'")


class MissingCorrelationError(WebhookProcessingError):
    """The payload lacks an identifier required to correlate it with stored records."""

    def __init__(self, event_type: str, field: str):
        self.event_type = event_type
        self.field = field
        super().__init__(f"{event_type} payload is missing required field '{field}'")
