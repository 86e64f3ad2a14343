from enum import Enum


class SortOption(str, Enum):
    POINTS = "points"
    TEAM_NUM = "teamNum"


class AuthStatus(str, Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class FetchState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    AUTH_ERROR = "auth_error"
    TRANSIENT_ERROR = "transient_error"


class FetchEventKind(str, Enum):
    USER_REQUESTED_LOAD = "user_requested_load"
    TIMER_FIRED = "timer_fired"
    FETCH_SUCCEEDED = "fetch_succeeded"
    FETCH_FAILED = "fetch_failed"
    AUTH_STATUS_CHANGED = "auth_status_changed"


class FailureKind(str, Enum):
    AUTH = "auth"
    TRANSIENT = "transient"


# Error code the API uses to tell an expired session apart from a missing one
AUTH_EXPIRED_CODE = "AUTH_EXPIRED"
