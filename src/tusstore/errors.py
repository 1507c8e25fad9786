"""Error definitions for TusStore.

Every error raised by the store carries a stable ``code`` and an HTTP status
hint so that a protocol handler can map outcomes onto responses without
inspecting messages.
"""


class TusStoreError(Exception):
    """A store error with code, message, and HTTP status hint.

    Attributes:
        code: The error code string (e.g. "FileNotFound").
        message: Human-readable error description.
        http_status: The HTTP status a protocol handler should answer with.
        extra_fields: Additional key-value pairs describing the failure.
    """

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = 400,
        extra_fields: dict[str, str] | None = None,
    ) -> None:
        """Initialize the store error.

        Args:
            code: Error code.
            message: Error description.
            http_status: HTTP status hint (default 400).
            extra_fields: Optional extra fields.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra_fields = extra_fields or {}


# -- Store-level errors --------------------------------------------------------


class FileNotFound(TusStoreError):
    """The specified upload does not exist."""

    def __init__(self, file_id: str = "") -> None:
        super().__init__(
            code="FileNotFound",
            message="The specified upload does not exist.",
            http_status=404,
            extra_fields={"FileId": file_id} if file_id else {},
        )


class UploadLengthExceeded(TusStoreError):
    """An append would write past the declared upload length.

    Attributes:
        provided: Number of bytes the caller tried to write. When
            ``lower_bound`` is set the request size was not known up front
            and this is only the count received when the overrun was found.
        upload_length: The declared total length of the upload.
        lower_bound: True if ``provided`` is a lower bound on the request size.
    """

    def __init__(
        self,
        provided: int,
        upload_length: int,
        file_id: str = "",
        *,
        lower_bound: bool = False,
    ) -> None:
        fields = {"Provided": str(provided), "UploadLength": str(upload_length)}
        if lower_bound:
            fields["ProvidedIsLowerBound"] = "true"
        if file_id:
            fields["FileId"] = file_id
        contains = f"at least {provided}" if lower_bound else str(provided)
        super().__init__(
            code="UploadLengthExceeded",
            message=(
                f"Request contains {contains} bytes, which exceeds the remaining "
                f"capacity of an upload with Upload-Length {upload_length}."
            ),
            http_status=413,
            extra_fields=fields,
        )
        self.provided = provided
        self.upload_length = upload_length
        self.lower_bound = lower_bound


class OffsetMismatch(TusStoreError):
    """The caller's offset does not match the stored offset."""

    def __init__(self, expected: int, actual: int, file_id: str = "") -> None:
        fields = {"Expected": str(expected), "Actual": str(actual)}
        if file_id:
            fields["FileId"] = file_id
        super().__init__(
            code="OffsetMismatch",
            message=f"Offset does not match: got {expected}, upload is at {actual}.",
            http_status=409,
            extra_fields=fields,
        )
        self.expected = expected
        self.actual = actual


class UploadLengthAlreadySet(TusStoreError):
    """The upload length was declared already and cannot change."""

    def __init__(self, file_id: str = "") -> None:
        super().__init__(
            code="UploadLengthAlreadySet",
            message="Upload-Length has already been set for this upload.",
            http_status=400,
            extra_fields={"FileId": file_id} if file_id else {},
        )


class InvalidMetadata(TusStoreError, ValueError):
    """The metadata header is malformed."""

    def __init__(self, message: str = "The metadata header is not valid.") -> None:
        super().__init__(code="InvalidMetadata", message=message, http_status=400)


class BackendError(TusStoreError):
    """The storage backend is unreachable or failed unexpectedly."""

    def __init__(self, message: str = "The storage backend failed.") -> None:
        super().__init__(code="BackendError", message=message, http_status=503)


class CapacityError(BackendError):
    """A write would exceed the backend's configured capacity."""


# -- Backend-level errors ------------------------------------------------------


class AppendConflict(Exception):
    """An atomic append found the blob at a different size than expected.

    Attributes:
        blob_id: The blob that was targeted.
        expected: The offset the caller expected.
        actual: The size observed by the backend, or None if not known.
    """

    def __init__(self, blob_id: str, expected: int, actual: int | None = None) -> None:
        super().__init__(
            f"Append conflict on {blob_id}: expected size {expected}, found {actual}"
        )
        self.blob_id = blob_id
        self.expected = expected
        self.actual = actual
