__all__ = [
    "ScribeError",
    "OfflineError",
    "NoProjectError",
    "AlreadySubscribedError",
    "NotSubscribedError",
    "AlreadyListeningError",
    "NotFoundError",
    "DuplicateLabelError",
    "NonEmptyTargetError",
    "MissingIdError",
    "OrphanRecordError",
    "EmptyCommentError",
    "AdapterError",
    "SubscriptionClosedError",
]


class ScribeError(Exception):
    """
    Base class of all errors raised by Scribe.
    """


class OfflineError(ScribeError):
    """
    Raised when an operation needing the network is attempted while the
    node is disconnected or the daemon is unreachable.
    """

    def __init__(self, operation: str | None = None):
        suffix = f" (attempted: {operation})" if operation else ""
        super().__init__(f"node is offline{suffix}")


class NoProjectError(ScribeError):
    """
    Raised when publishing from a node with no registered project.
    """

    def __init__(self):
        super().__init__("node has no registered project")


class AlreadySubscribedError(ScribeError):
    """
    Raised when subscribing, or changing project, while a subscription is
    already active. Call {obj}`Node.unsubscribe` first.
    """

    def __init__(self, project: str):
        self.project = project
        super().__init__(f"node is already subscribed to project '{project}'")


class NotSubscribedError(ScribeError):
    """
    Raised when starting a listener on a node without a subscription.
    """

    def __init__(self):
        super().__init__("node has no active subscription")


class AlreadyListeningError(ScribeError):
    """
    Raised when creating a second listener on the same subscription.
    """

    def __init__(self, project: str):
        self.project = project
        super().__init__(
            f"subscription to project '{project}' already has a listener"
        )


class NotFoundError(ScribeError, KeyError):
    """
    Raised when looking up a project label which isn't in the database.
    """

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"project not found (label: {label})")

    def __str__(self) -> str:
        return str(self.args[0])


class DuplicateLabelError(ScribeError):
    """
    Raised when adding a project whose label is already in the database.
    """

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"project already in the database (label: {label})")


class NonEmptyTargetError(ScribeError):
    """
    Raised when pulling into a database which already holds projects. Pull
    does not support merges.
    """

    def __init__(self, count: int):
        self.count = count
        super().__init__(
            f"project database is not empty ({count} projects), pull does not support merges"
        )


class MissingIdError(ScribeError, ValueError):
    """
    Raised when a content id is required but an empty one was given.
    """

    def __init__(self, operation: str):
        super().__init__(f"no content id provided for {operation}")


class OrphanRecordError(ScribeError):
    """
    Raised when syncing a run which doesn't reference a registered parent
    project.
    """


class EmptyCommentError(ScribeError, ValueError):
    """
    Raised when adding a comment with no text.
    """

    def __init__(self):
        super().__init__("no comment provided")


class AdapterError(ScribeError):
    """
    Raised for any failure surfaced by the content store: transport errors,
    error responses and undecodable payloads. The underlying exception, if
    any, is chained as `__cause__`.
    """


class SubscriptionClosedError(AdapterError):
    """
    Raised by a subscription handle once its stream has ended or it has been
    cancelled.
    """
