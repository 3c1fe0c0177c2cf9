class BatchResult:
    """Aggregate outcome of a multi-item operation.

    Sweeps keep going after a per-item validation failure; each item ends up
    in exactly one of ``succeeded``, ``failed`` or ``skipped``.
    """

    def __init__(self, operation):
        self.operation = operation
        self.succeeded = []
        self.failed = []
        self.skipped = []

    def ok(self, **item):
        self.succeeded.append(item)

    def fail(self, error, **item):
        item.update(error=error.code, message=error.message)
        self.failed.append(item)

    def skip(self, reason, **item):
        item["reason"] = reason
        self.skipped.append(item)

    @property
    def partial(self):
        return bool(self.failed) and bool(self.succeeded)

    def __len__(self):
        return len(self.succeeded)

    def __repr__(self):
        return (
            f"<BatchResult {self.operation} ok={len(self.succeeded)} "
            f"failed={len(self.failed)} skipped={len(self.skipped)}>"
        )
