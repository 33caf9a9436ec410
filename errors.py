class ApiError(Exception):
    """Error that is reported to the caller as a JSON ``{error, details}`` body."""

    def __init__(self, status_code, error, details=None):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details

    def to_dict(self):
        body = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


class FalServiceError(ApiError):
    """A FAL.ai submission failed."""

    def __init__(self, error, details=None, fal_status=None):
        super().__init__(500, error, details)
        self.fal_status = fal_status

    @classmethod
    def from_exception(cls, error, exc):
        status = getattr(exc, "status_code", None) or getattr(getattr(exc, "response", None), "status_code", None)
        if status == 500:
            details = (
                "FAL.ai internal server error. This could be due to:\n"
                "- Invalid image format or corruption\n"
                "- Images too large or too small\n"
                "- Face detection failed\n"
                "- Temporary FAL.ai service issues"
            )
        elif status == 400:
            details = "Invalid input parameters. Check image formats and parameters."
        else:
            details = _body_detail(exc) or str(exc)
        return cls(error, details, fal_status=status)

    def to_dict(self):
        body = super().to_dict()
        if self.fal_status is not None:
            body["falStatus"] = self.fal_status
        return body


def _body_detail(exc):
    response = getattr(exc, "response", None)
    if response is None:
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("detail"):
        detail = body["detail"]
        return detail if isinstance(detail, str) else str(detail)
    return None
