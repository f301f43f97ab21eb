"""
Unit tests for retry logic with exponential backoff

Tests verify:
- Exponential backoff calculation
- Jitter implementation
- Exception filtering
- Retry callbacks
- Remote-call retry classification
"""

from unittest.mock import Mock, call, patch

import pytest
import requests

from utils.retry import (
    backoff_delay,
    is_retryable_remote_exception,
    retry_after_seconds,
    retry_remote_operation,
    retry_with_backoff,
)


def _http_error(status_code, headers=None):
    response = Mock(status_code=status_code, headers=headers or {})
    return requests.HTTPError(f"{status_code} Error", response=response)


@patch("utils.retry.time.sleep")
class TestRetryWithBackoff:
    """Test retry_with_backoff decorator"""

    def test_success_on_first_attempt(self, mock_sleep):
        mock_func = Mock(return_value="success")

        result = retry_with_backoff(max_retries=3)(mock_func)()

        assert result == "success"
        assert mock_func.call_count == 1
        mock_sleep.assert_not_called()

    def test_success_after_retries(self, mock_sleep):
        """Test function succeeds after transient failures"""
        mock_func = Mock(side_effect=[
            ConnectionError("Connection failed"),
            ConnectionError("Connection failed"),
            "success",
        ])
        mock_func.__name__ = "fetch_page"

        result = retry_with_backoff(max_retries=3, jitter=False)(mock_func)()

        assert result == "success"
        assert mock_func.call_count == 3
        assert mock_sleep.call_args_list == [call(1.0), call(2.0)]

    def test_max_retries_exceeded(self, mock_sleep):
        mock_func = Mock(side_effect=TimeoutError("timed out"))
        mock_func.__name__ = "fetch_page"

        with pytest.raises(TimeoutError):
            retry_with_backoff(max_retries=2, jitter=False)(mock_func)()

        assert mock_func.call_count == 3

    def test_delay_is_capped(self, mock_sleep):
        mock_func = Mock(side_effect=[OSError("reset")] * 3 + ["ok"])
        mock_func.__name__ = "fetch_page"

        retry_with_backoff(
            max_retries=3, base_delay=10.0, max_delay=15.0, jitter=False
        )(mock_func)()

        assert mock_sleep.call_args_list == [call(10.0), call(15.0), call(15.0)]

    def test_jitter_stays_within_bounds(self, mock_sleep):
        mock_func = Mock(side_effect=[OSError("reset"), "ok"])
        mock_func.__name__ = "fetch_page"

        retry_with_backoff(max_retries=1, base_delay=4.0)(mock_func)()

        delay = mock_sleep.call_args.args[0]
        assert 3.0 <= delay <= 5.0

    def test_non_retryable_exception_type(self, mock_sleep):
        mock_func = Mock(side_effect=KeyError("missing"))
        mock_func.__name__ = "fetch_page"

        with pytest.raises(KeyError):
            retry_with_backoff(retryable_exceptions=(ConnectionError,))(mock_func)()

        assert mock_func.call_count == 1

    def test_should_retry_predicate(self, mock_sleep):
        mock_func = Mock(side_effect=ValueError("permanent"))
        mock_func.__name__ = "fetch_page"

        with pytest.raises(ValueError):
            retry_with_backoff(should_retry=lambda e: False)(mock_func)()

        assert mock_func.call_count == 1

    def test_on_retry_callback(self, mock_sleep):
        callback = Mock()
        error = ConnectionError("reset")
        mock_func = Mock(side_effect=[error, "ok"])
        mock_func.__name__ = "fetch_page"

        retry_with_backoff(max_retries=1, jitter=False, on_retry=callback)(mock_func)()

        callback.assert_called_once_with(1, error, 1.0)

    def test_failing_callback_does_not_stop_retries(self, mock_sleep):
        callback = Mock(side_effect=RuntimeError("metrics down"))
        mock_func = Mock(side_effect=[ConnectionError("reset"), "ok"])
        mock_func.__name__ = "fetch_page"

        result = retry_with_backoff(max_retries=1, on_retry=callback)(mock_func)()

        assert result == "ok"


class TestIsRetryableRemoteException:
    """Test is_retryable_remote_exception function"""

    @pytest.mark.parametrize("status_code", [408, 429, 500, 502, 503, 504])
    def test_transient_status_codes(self, status_code):
        assert is_retryable_remote_exception(_http_error(status_code)) is True

    @pytest.mark.parametrize("status_code", [400, 401, 403, 404, 412])
    def test_client_errors_fail_fast(self, status_code):
        assert is_retryable_remote_exception(_http_error(status_code)) is False

    def test_http_error_without_response(self):
        assert is_retryable_remote_exception(requests.HTTPError("no response")) is False

    @pytest.mark.parametrize("exception", [
        requests.ConnectionError("Connection aborted"),
        requests.Timeout("Read timed out"),
        ConnectionResetError("connection reset by peer"),
        OSError("Resource temporarily unavailable"),
    ])
    def test_connection_failures(self, exception):
        assert is_retryable_remote_exception(exception) is True

    @pytest.mark.parametrize("exception", [
        ValueError("Invalid FetchXML query"),
        KeyError("PrimaryIdAttribute"),
    ])
    def test_programming_errors(self, exception):
        assert is_retryable_remote_exception(exception) is False


@patch("utils.retry.time.sleep")
class TestRetryRemoteOperation:
    """Test retry_remote_operation decorator"""

    def test_throttling_is_retried(self, mock_sleep):
        mock_func = Mock(side_effect=[_http_error(429), {"value": []}])
        mock_func.__name__ = "get_json"

        result = retry_remote_operation(max_retries=3)(mock_func)()

        assert result == {"value": []}
        assert mock_func.call_count == 2

    def test_unauthorized_is_not_retried(self, mock_sleep):
        mock_func = Mock(side_effect=_http_error(401))
        mock_func.__name__ = "get_json"

        with pytest.raises(requests.HTTPError):
            retry_remote_operation(max_retries=3)(mock_func)()

        assert mock_func.call_count == 1
        mock_sleep.assert_not_called()

    def test_retry_after_header_is_honored(self, mock_sleep):
        """Test a throttled response waits as long as the server asks"""
        # Arrange
        mock_func = Mock(side_effect=[_http_error(429, {"Retry-After": "7"}), "ok"])
        mock_func.__name__ = "get_json"

        # Act
        retry_remote_operation(max_retries=3)(mock_func)()

        # Assert
        mock_sleep.assert_called_once_with(7.0)

    def test_retry_after_is_capped(self, mock_sleep):
        """Test a very long Retry-After is limited to max_delay"""
        mock_func = Mock(side_effect=[_http_error(503, {"Retry-After": "600"}), "ok"])
        mock_func.__name__ = "get_json"

        retry_remote_operation(max_retries=1, max_delay=30.0)(mock_func)()

        mock_sleep.assert_called_once_with(30.0)


class TestBackoffHelpers:
    """Test backoff_delay and retry_after_seconds"""

    @pytest.mark.parametrize("attempt,expected", [(0, 0.5), (1, 1.0), (2, 2.0), (5, 10.0)])
    def test_backoff_without_jitter(self, attempt, expected):
        assert backoff_delay(attempt, base_delay=0.5, max_delay=10.0, jitter=False) == expected

    def test_jitter_has_floor(self):
        """Test jittered delays never drop below the minimum"""
        with patch("utils.retry.random.uniform", return_value=-0.25 * 0.1):
            assert backoff_delay(0, base_delay=0.1, max_delay=1.0) == 0.1

    @pytest.mark.parametrize(
        "headers,expected",
        [
            ({"Retry-After": "12"}, 12.0),
            ({"Retry-After": "0"}, 0.0),
            ({"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}, None),
            ({"Retry-After": "-3"}, None),
            ({}, None),
        ],
    )
    def test_retry_after_seconds(self, headers, expected):
        assert retry_after_seconds(_http_error(429, headers)) == expected

    def test_retry_after_without_response(self):
        assert retry_after_seconds(ConnectionError("reset")) is None
