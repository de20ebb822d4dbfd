"""Error conditions raised while resolving a resource.

Each class is a distinct condition so that logs and metrics can tell them
apart. None of them is ever shown to an HTTP caller; the API layer maps all
of them to one generic error response.
"""


class EvinceError(Exception):
    """Base class for resolution failures."""

    message = "resolution failed"

    def __init__(self, cause=None):
        super().__init__(self.message if cause is None else f"{self.message}: {cause}")
        self.cause = cause


class RPCConnectionError(EvinceError):
    message = "unable to connect to rpc client"


class ABCIQueryError(EvinceError):
    message = "abci query failed"


class UnmarshalResponseError(EvinceError):
    message = "unable to unmarshal response"


class MarshalResponseError(EvinceError):
    message = "unable to marshal response"


class FetchError(EvinceError):
    """An auxiliary HTTP data source call failed."""

    message = "unable to fetch resource"


class UnableToGetAPR(FetchError):
    message = "unable to get APR"


class UnableToGetTotalSupply(FetchError):
    message = "unable to get total supply"


class UnableToGetLockedTokens(FetchError):
    message = "unable to get locked tokens"


class UnableToGetCommunityPool(FetchError):
    message = "unable to get community pool"
