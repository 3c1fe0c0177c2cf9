def batch_to_dict(result):
    """Per-item outcome of a sweep, as returned to staff screens and logs."""
    return {
        "operation": result.operation,
        "succeeded": result.succeeded,
        "failed": result.failed,
        "skipped": result.skipped,
        "partial": result.partial,
    }
