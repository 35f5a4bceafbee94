import unittest

from campussync.errors.exceptions import (
    ApiError,
    AuthError,
    BadRequestError,
    CampusSyncError,
    ConflictError,
    FetchError,
    ForbiddenError,
    HttpErrorInfo,
    NotFoundError,
    RateLimitError,
    RequestError,
    SubscriptionError,
    map_http_error,
)


class TestExceptions(unittest.TestCase):
    def test_base_error_keeps_details_and_cause(self) -> None:
        cause = RuntimeError("root")
        err = CampusSyncError("msg", details={"k": "v"}, cause=cause)
        self.assertEqual(str(err), "msg")
        self.assertEqual(err.details["k"], "v")
        self.assertIs(err.cause, cause)

    def test_details_default_to_empty_dict(self) -> None:
        err = SubscriptionError("closed")
        self.assertEqual(err.details, {})
        self.assertIsNone(err.cause)

    def test_fetch_and_subscription_errors_are_not_request_errors(self) -> None:
        self.assertFalse(issubclass(FetchError, RequestError))
        self.assertFalse(issubclass(SubscriptionError, RequestError))
        self.assertTrue(issubclass(FetchError, CampusSyncError))

    def test_map_http_error_basic(self) -> None:
        err = map_http_error(HttpErrorInfo(status_code=404, message="not found"))
        self.assertIsInstance(err, NotFoundError)

        err = map_http_error(HttpErrorInfo(status_code=400, message="bad req"))
        self.assertIsInstance(err, BadRequestError)

        err = map_http_error(HttpErrorInfo(status_code=429, message="rate"))
        self.assertIsInstance(err, RateLimitError)

        err = map_http_error(HttpErrorInfo(status_code=409, message="conflict"))
        self.assertIsInstance(err, ConflictError)

        err = map_http_error(HttpErrorInfo(status_code=412, message="precondition"))
        self.assertIsInstance(err, ConflictError)

        err = map_http_error(HttpErrorInfo(status_code=401, message="auth"))
        self.assertIsInstance(err, AuthError)

        err = map_http_error(HttpErrorInfo(status_code=403, message="denied"))
        self.assertIsInstance(err, ForbiddenError)

    def test_map_http_error_5xx_is_api_error(self) -> None:
        err = map_http_error(HttpErrorInfo(status_code=503, message="unavail"))
        self.assertIsInstance(err, ApiError)
        self.assertEqual(err.details["status_code"], 503)

    def test_map_http_error_other_is_api_error(self) -> None:
        err = map_http_error(HttpErrorInfo(status_code=418))
        self.assertIsInstance(err, ApiError)
        self.assertEqual(str(err), "HTTP error 418")

    def test_map_http_error_merges_details(self) -> None:
        err = map_http_error(
            HttpErrorInfo(status_code=404, reason="Not Found", details={"url": "/users/9"})
        )
        self.assertEqual(err.details["reason"], "Not Found")
        self.assertEqual(err.details["url"], "/users/9")


if __name__ == "__main__":
    unittest.main()
