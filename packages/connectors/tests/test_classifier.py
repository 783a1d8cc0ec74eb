"""厂商响应分类测试 -- 传输成功 != 业务成功"""

import pytest
from sellsync.connectors.classifier import (
    BUSINESS_FAILURE_CODE,
    classify_vendor_response,
    detect_failure_body,
    extract_error_message,
    resolve_submission,
)
from sellsync.connectors.exceptions import ExternalApiError, SessionExpiredError
from sellsync.connectors.mock import ecount_success_body


class TestClassifyVendorResponse:
    def test_ecount_success(self):
        verdict = classify_vendor_response(ecount_success_body("20260301-1"))
        assert verdict.success is True
        assert verdict.result_id == "20260301-1"

    def test_lowercase_aliases(self):
        verdict = classify_vendor_response(
            {"status": "200", "successCount": 2, "failCount": 0, "resultId": "R-9"}
        )
        assert verdict.success is True
        assert verdict.result_id == "R-9"

    def test_missing_status_with_counts_is_success(self):
        verdict = classify_vendor_response({"Data": {"SuccessCnt": 1, "FailCnt": 0}})
        assert verdict.success is True

    def test_fail_count_makes_2xx_a_failure(self):
        body = {
            "Status": "200",
            "Data": {"SuccessCnt": 1, "FailCnt": 1},
            "Errors": [{"Code": "E101", "Message": "품목코드 없음"}],
        }
        verdict = classify_vendor_response(body)
        assert verdict.success is False
        assert verdict.session_expired is False
        assert verdict.error_code == "E101"
        assert "품목코드 없음" in verdict.error_message

    def test_zero_success_count_is_failure(self):
        verdict = classify_vendor_response({"Status": "200", "Data": {"SuccessCnt": 0, "FailCnt": 0}})
        assert verdict.success is False
        assert verdict.error_code == BUSINESS_FAILURE_CODE

    def test_empty_body_is_failure(self):
        assert classify_vendor_response({}).success is False

    def test_non_200_status_is_error_code(self):
        verdict = classify_vendor_response(
            {"Status": "500", "Error": {"Message": "Internal error"}}
        )
        assert verdict.error_code == "500"
        assert verdict.error_message == "Internal error"

    @pytest.mark.parametrize(
        "body,code",
        [
            ({"Status": "401"}, "401"),
            ({"status": "SESSION_EXPIRED"}, "SESSION_EXPIRED"),
            (
                {"Status": "500", "Errors": [{"Code": "SESSION_EXPIRED", "Message": "만료"}]},
                "SESSION_EXPIRED",
            ),
        ],
    )
    def test_session_expiry_signatures(self, body, code):
        verdict = classify_vendor_response(body)
        assert verdict.success is False
        assert verdict.session_expired is True
        assert verdict.error_code == code


class TestErrorMessage:
    def test_errors_take_priority(self):
        body = {"Errors": [{"Code": "E1", "Message": "first"}], "Error": {"Message": "second"}}
        assert extract_error_message(body) == "[E1] first"

    def test_total_error_fallback(self):
        body = {"Data": {"ResultDetails": [{"TotalError": "수량 오류"}]}}
        assert extract_error_message(body) == "수량 오류"


class TestResolveSubmission:
    def test_success_uses_fallback_when_unnumbered(self):
        result = resolve_submission(
            {"Status": "200", "Data": {"SuccessCnt": 1, "FailCnt": 0}},
            {"doc": 1},
            "UNNUMBERED",
        )
        assert result.result_id == "UNNUMBERED"
        assert result.request_snapshot == {"doc": 1}

    def test_session_expired_raises(self):
        with pytest.raises(SessionExpiredError) as exc_info:
            resolve_submission({"Status": "401"}, {}, "X")
        assert exc_info.value.code == "401"

    def test_business_failure_raises(self):
        body = {"Status": "200", "Data": {"SuccessCnt": 0, "FailCnt": 1}}
        with pytest.raises(ExternalApiError) as exc_info:
            resolve_submission(body, {}, "X")
        assert not isinstance(exc_info.value, SessionExpiredError)
        assert exc_info.value.response_payload == body


class TestDetectFailureBody:
    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"requestId": "req-1"},
            {"data": [{"orderId": "a"}]},
            {"code": "OK", "message": "done", "data": {"orderId": "a"}},
            {"status": "200"},
        ],
    )
    def test_plain_success_bodies(self, body):
        assert detect_failure_body(body) is None

    def test_top_level_code_and_message(self):
        verdict = detect_failure_body({"code": "NOT_FOUND", "message": "주문 없음"})
        assert verdict.success is False
        assert verdict.error_code == "NOT_FOUND"
        assert verdict.error_message == "주문 없음"
        assert verdict.session_expired is False

    def test_failed_status(self):
        verdict = detect_failure_body({"status": "500", "error": "internal"})
        assert verdict.error_code == "500"
        assert verdict.error_message == "internal"

    def test_errors_list(self):
        verdict = detect_failure_body({"errors": [{"code": "E100", "message": "dup"}]})
        assert verdict.error_code == "E100"

    def test_session_code(self):
        verdict = detect_failure_body({"code": "SESSION_EXPIRED", "message": "login again"})
        assert verdict.session_expired is True
