"""Exception classes raised by the split and upload pipeline."""


class DumpSplitError(Exception):
    """
    Base exception class for all dumpsplit errors.
    """
    pass


class PreconditionError(DumpSplitError):
    """
    Raised when a run cannot start: missing case reference or UUID,
    or an unreadable input file.
    """
    pass


class InsufficientSpaceError(PreconditionError):
    """
    Raised when the work directory cannot hold the split output.
    """

    def __init__(self, check):
        self.check = check
        super().__init__(
            f"Insufficient free space in {check.directory}: "
            f"{check.required} bytes required, "
            f"{check.available if check.available is not None else 'unknown'} available"
        )


class MissingPartError(PreconditionError):
    """
    Raised when one or more parts named for re-upload cannot be read.
    """

    def __init__(self, missing, hint=None):
        self.missing = list(missing)
        self.hint = hint
        super().__init__(f"Could not find {', '.join(self.missing)} to upload")


class ManifestError(DumpSplitError):
    """
    Raised when a manifest would be incomplete or cannot be parsed.
    """
    pass


class UploadError(DumpSplitError):
    """
    Raised when an artifact could not be stored at its destination.
    """

    def __init__(self, artifact, destination, cause):
        self.artifact = artifact
        self.destination = destination
        self.cause = cause
        super().__init__(f"Failed to upload {artifact} to {destination}: {cause}")
