"""Exceptions raised by the bill actor runtime."""


class BillingError(Exception):
    """Base class for bill actor failures."""


class BillNotFound(BillingError):
    def __init__(self, bill_id: str) -> None:
        super().__init__(f"Bill {bill_id} not found")
        self.bill_id = bill_id


class BillAlreadyExists(BillingError):
    def __init__(self, bill_id: str) -> None:
        super().__init__(f"Bill {bill_id} already exists")
        self.bill_id = bill_id


class BillCreationFailed(BillingError):
    """The initial store upsert failed; the bill was never created."""

    def __init__(self, bill_id: str, reason: str) -> None:
        super().__init__(f"Bill {bill_id} could not be created: {reason}")
        self.bill_id = bill_id
        self.reason = reason


class BillActorFailed(BillingError):
    """The actor hit an unexpected fault and terminated without closing the bill."""

    def __init__(self, bill_id: str, reason: str) -> None:
        super().__init__(f"Bill actor {bill_id} failed: {reason}")
        self.bill_id = bill_id
        self.reason = reason


class NonDeterministicEffectError(BillingError):
    """A replayed effect did not match the one being requested."""


class BillActorStopped(BillingError):
    """The actor was cancelled, e.g. by shutdown, before the bill closed."""

    def __init__(self, bill_id: str) -> None:
        super().__init__(f"Bill actor {bill_id} was stopped before the bill closed")
        self.bill_id = bill_id
