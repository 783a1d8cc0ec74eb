"""厂商响应分类器 -- 传输成功 != 业务成功

统一规则：厂商自身的 status 字段表示成功（存在时）
且成功计数 > 0 且失败计数 == 0，才算业务成功。
2xx 响应携带业务失败体同样判为失败。

兼容 ECOUNT 风格（Status / Data.SuccessCnt / Data.FailCnt / Errors[].Code）
与通用小写风格（status / successCount / failCount / errors[].code）。
"""

from typing import Any

from .exceptions import ExternalApiError, SessionExpiredError
from .models import SubmitResult, VendorVerdict

SUCCESS_STATUS = "200"

# 会话失效特征码
SESSION_EXPIRED_CODES = frozenset({"401", "SESSION_EXPIRED"})

BUSINESS_FAILURE_CODE = "BUSINESS_FAILURE"


def _first(mapping: dict[str, Any], *names: str) -> Any:
    for name in names:
        if name in mapping and mapping[name] is not None:
            return mapping[name]
    return None


def _as_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _errors(body: dict[str, Any]) -> list[tuple[str | None, str | None]]:
    raw = _first(body, "Errors", "errors")
    if not isinstance(raw, list):
        return []
    result = []
    for item in raw:
        if isinstance(item, dict):
            code = _first(item, "Code", "code")
            message = _first(item, "Message", "message")
            result.append((str(code) if code is not None else None, message))
        else:
            result.append((None, str(item)))
    return result


def _data(body: dict[str, Any]) -> dict[str, Any]:
    data = _first(body, "Data", "data")
    return data if isinstance(data, dict) else {}


def extract_result_id(body: dict[str, Any]) -> str | None:
    """结果标识：Data.SlipNos[0]，其次 resultId"""
    slip_nos = _first(_data(body), "SlipNos", "slipNos")
    if isinstance(slip_nos, list) and slip_nos:
        return str(slip_nos[0])
    result_id = _first(body, "resultId", "result_id")
    return str(result_id) if result_id is not None else None


def extract_error_message(body: dict[str, Any]) -> str | None:
    """错误信息优先级：Errors[0] > Error.Message > Data.ResultDetails[0].TotalError"""
    errors = _errors(body)
    if errors:
        code, message = errors[0]
        if code:
            return f"[{code}] {message or ''}".strip()
        if message:
            return message

    error = _first(body, "Error", "error")
    if isinstance(error, dict):
        message = _first(error, "Message", "message")
        if message:
            return str(message)
    elif isinstance(error, str) and error:
        return error

    details = _first(_data(body), "ResultDetails", "resultDetails")
    if isinstance(details, list) and details and isinstance(details[0], dict):
        total_error = _first(details[0], "TotalError", "totalError")
        if total_error:
            return str(total_error)
    return None


def is_session_expired(body: dict[str, Any]) -> bool:
    """status 或任一错误码命中会话失效特征"""
    status = _first(body, "Status", "status")
    if status is not None and str(status) in SESSION_EXPIRED_CODES:
        return True
    return any(code in SESSION_EXPIRED_CODES for code, _ in _errors(body) if code)


def classify_vendor_response(body: dict[str, Any]) -> VendorVerdict:
    """对厂商响应体做业务分类

    Args:
        body: 解析后的 JSON 响应体

    Returns:
        VendorVerdict
    """
    status_raw = _first(body, "Status", "status")
    status = str(status_raw) if status_raw is not None else None
    data = _data(body)

    success_cnt = _as_int(_first(data, "SuccessCnt", "successCount"))
    if success_cnt is None:
        success_cnt = _as_int(_first(body, "SuccessCnt", "successCount"))
    fail_cnt = _as_int(_first(data, "FailCnt", "failCount"))
    if fail_cnt is None:
        fail_cnt = _as_int(_first(body, "FailCnt", "failCount"))

    status_ok = status is None or status == SUCCESS_STATUS
    if status_ok and success_cnt is not None and success_cnt > 0 and not fail_cnt:
        return VendorVerdict(success=True, result_id=extract_result_id(body))

    session_expired = is_session_expired(body)
    errors = _errors(body)
    if session_expired:
        if status in SESSION_EXPIRED_CODES:
            error_code = status
        else:
            error_code = next(c for c, _ in errors if c in SESSION_EXPIRED_CODES)
    elif status is not None and status != SUCCESS_STATUS:
        error_code = status
    elif errors and errors[0][0]:
        error_code = errors[0][0]
    else:
        error_code = BUSINESS_FAILURE_CODE

    error_message = extract_error_message(body) or (
        f"SuccessCnt={success_cnt}, FailCnt={fail_cnt}"
    )
    return VendorVerdict(
        success=False,
        session_expired=session_expired,
        error_code=error_code,
        error_message=error_message,
    )


def detect_failure_body(body: dict[str, Any]) -> VendorVerdict | None:
    """识别不带成功计数的 2xx 响应中的失败体（SmartStore 等）

    失败特征：status 非成功值、Errors / Error 字段，或顶层 code + message 且无 data。

    Returns:
        失败时的 VendorVerdict；未发现失败特征返回 None
    """
    status = _first(body, "Status", "status")
    status_failed = status is not None and str(status) != SUCCESS_STATUS
    has_errors = bool(_errors(body)) or _first(body, "Error", "error") is not None
    if status_failed or has_errors:
        verdict = classify_vendor_response(body)
        return None if verdict.success else verdict

    code = _first(body, "code")
    message = _first(body, "message")
    if code is not None and message is not None and _first(body, "Data", "data") is None:
        return VendorVerdict(
            success=False,
            session_expired=str(code) in SESSION_EXPIRED_CODES,
            error_code=str(code),
            error_message=str(message),
        )
    return None


def resolve_submission(
    body: dict[str, Any],
    request_snapshot: dict[str, Any],
    fallback_result_id: str,
) -> SubmitResult:
    """分类响应体：成功返回 SubmitResult，失败抛出对应异常

    Raises:
        SessionExpiredError: 命中会话失效特征
        ExternalApiError: 其他业务失败
    """
    verdict = classify_vendor_response(body)
    if verdict.success:
        return SubmitResult(
            result_id=verdict.result_id or fallback_result_id,
            request_snapshot=request_snapshot,
            response_payload=body,
        )
    if verdict.session_expired:
        raise SessionExpiredError(
            verdict.error_code or "401",
            verdict.error_message or "session expired",
            response_payload=body,
        )
    raise ExternalApiError(
        verdict.error_code or BUSINESS_FAILURE_CODE,
        verdict.error_message or "厂商业务失败",
        response_payload=body,
    )
