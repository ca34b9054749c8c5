class BillingError(Exception):
    """Base class for billing failures raised inside saasly."""


class InvalidPriceLookup(BillingError, ValueError):
    """Unknown tier/interval pair or unknown Stripe price id."""


class BillingDataError(BillingError):
    """Stored billing records violate an invariant the mapper relies on."""


class RecordNotFound(BillingError, LookupError):
    """A Stripe event references a local record that does not exist."""


def get_error_message(error: BaseException) -> str:
    message = str(error)
    return message or type(error).__name__
