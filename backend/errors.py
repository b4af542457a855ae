"""Error kinds raised by the event engine."""


class OutOfRange(ValueError):
    """Date conversion outside the supported calendar span."""


class InvalidPeriod(ValueError):
    """Unknown period token or bad custom range."""


class MalformedRecord(ValueError):
    """A person/custom-event record whose source date cannot be used."""

    def __init__(self, kind, record_id, message):
        super().__init__(f"{kind} {record_id}: {message}")
        self.kind = kind
        self.record_id = record_id
        self.message = message

    def to_dict(self):
        return {'kind': self.kind, 'record_id': self.record_id, 'message': self.message}


class StoreUnavailable(RuntimeError):
    """Person/event snapshots could not be read from the store."""
