"""Error taxonomy for the FHIR protocol layer.

Every error carries the HTTP status and FHIR issue code the API layer uses when
it renders an OperationOutcome. Core code raises; recovery (re-fetch and retry
on conflict) belongs to the caller.
"""


class FHIRError(Exception):
    """Base class for protocol-level failures."""

    status_code: int = 500
    issue_code: str = "exception"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(FHIRError):
    """No version/history state exists for the given resource id."""

    status_code = 404
    issue_code = "not-found"

    def __init__(self, resource_type: str, resource_id: str, version_id: int | None = None) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.version_id = version_id
        if version_id is None:
            message = f"{resource_type}/{resource_id} not found."
        else:
            message = f"{resource_type}/{resource_id} version {version_id} not found."
        super().__init__(message)


class ConflictError(FHIRError):
    """Expected version does not match the stored version."""

    status_code = 409
    issue_code = "conflict"

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        expected_version: int | None,
        current_version: int | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.expected_version = expected_version
        self.current_version = current_version
        if expected_version is None:
            message = f"{resource_type}/{resource_id} already exists."
        elif current_version is None:
            message = (
                f"Version conflict on {resource_type}/{resource_id}: "
                f"expected version {expected_version} is stale."
            )
        else:
            message = (
                f"Version conflict on {resource_type}/{resource_id}: "
                f"expected version {expected_version}, current is {current_version}."
            )
        super().__init__(message)


class MalformedPatchError(FHIRError):
    """The patch document itself cannot be parsed or is missing required fields."""

    status_code = 400
    issue_code = "invalid"


class PatchApplicationError(FHIRError):
    """A well-formed patch could not be applied; the document is left untouched."""

    status_code = 422
    issue_code = "processing"

    def __init__(self, message: str, index: int | None = None) -> None:
        self.index = index
        if index is not None:
            message = f"operation {index}: {message}"
        super().__init__(message)


class UnsupportedPatchMediaTypeError(FHIRError):
    """PATCH body is neither JSON Patch nor JSON Merge Patch."""

    status_code = 415
    issue_code = "not-supported"

    def __init__(self, content_type: str | None) -> None:
        self.content_type = content_type
        super().__init__(
            "PATCH requires Content-Type: application/json-patch+json or "
            f"application/merge-patch+json (got {content_type or 'none'!r})."
        )


class InvalidResourceError(FHIRError):
    """A submitted resource body is not a valid instance of its resource type."""

    status_code = 400
    issue_code = "invalid"


class GoneError(FHIRError):
    """The requested version records the deletion of the resource."""

    status_code = 410
    issue_code = "deleted"

    def __init__(self, resource_type: str, resource_id: str, version_id: int) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.version_id = version_id
        super().__init__(f"{resource_type}/{resource_id} was deleted at version {version_id}.")
