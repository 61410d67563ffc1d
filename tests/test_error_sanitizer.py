from controllers.detox_controller import to_http_exception
from utils.error_sanitizer import FORMAT_ERROR_MESSAGE, SIZE_ERROR_MESSAGE, classify_upstream_error
from utils.errors import NotFound, QuotaExceeded, UpstreamFailure, ValidationError


def test_domain_errors_pass_through():
    original = NotFound("Image not found")
    assert classify_upstream_error(original, "generic") is original


def test_format_marker_maps_to_validation():
    err = classify_upstream_error(RuntimeError("Error code: 400 - Invalid input image"), "generic")
    assert isinstance(err, ValidationError)
    assert err.message == FORMAT_ERROR_MESSAGE


def test_size_marker_maps_to_validation():
    err = classify_upstream_error(RuntimeError("upload exceeds the size limit"), "generic")
    assert isinstance(err, ValidationError)
    assert err.message == SIZE_ERROR_MESSAGE


def test_file_access_error():
    err = classify_upstream_error(FileNotFoundError("/tmp/upload-1.png"), "generic")
    assert isinstance(err, ValidationError)
    assert "/tmp" not in err.message


def test_unknown_errors_are_generic_and_hide_details():
    err = classify_upstream_error(ConnectionError("https://internal.host:9000 api_key=sk-123"), "Error processing image")
    assert isinstance(err, UpstreamFailure)
    assert err.status_code == 500
    assert err.message == "Error processing image"


def test_http_mapping_sets_status_and_retry_after():
    exc = to_http_exception(QuotaExceeded("limit", retry_after=10.2))
    assert exc.status_code == 429
    assert exc.headers == {"Retry-After": "11"}
    assert to_http_exception(ValidationError("bad")).status_code == 400
    assert to_http_exception(NotFound("gone")).headers is None
