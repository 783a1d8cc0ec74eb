"""Effect 状态机测试

测试内容：
1. 合法 / 非法流转
2. SUCCESS 终态不可变，结果标识不可覆盖
3. mark_failed 计数与退避
4. prepare_retry 只接受 FAILED
"""

from datetime import UTC, datetime, timedelta

import pytest
from sellsync.core.exceptions import DuplicateResultError, StateConflictError
from sellsync.core.models import (
    TERMINAL_STATES,
    Effect,
    EffectDomain,
    EffectStatus,
    validate_transition,
)
from sellsync.core.retry import BackoffTableRetryPolicy
from sellsync.core.state_machine import (
    mark_failed,
    mark_success,
    prepare_retry,
    transition_to,
)

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
POLICY = BackoffTableRetryPolicy.from_minutes([1, 5, 15, 60, 180])


def _make_effect(**overrides) -> Effect:
    data = {
        "effect_id": "01JTESTEFFECT0000000000001",
        "domain": EffectDomain.MARKET_PUSH,
        "tenant_id": "tenant1",
        "key_fields": {"order_id": "order42", "tracking_no": "TRK-1"},
        "created_at": NOW,
        "updated_at": NOW,
    }
    data.update(overrides)
    return Effect(**data)


class TestTransitions:
    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (EffectStatus.INITIAL, EffectStatus.SUCCESS),
            (EffectStatus.INITIAL, EffectStatus.FAILED),
            (EffectStatus.FAILED, EffectStatus.INITIAL),
        ],
    )
    def test_valid_transition(self, from_status, to_status):
        assert validate_transition(from_status, to_status) is True

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (EffectStatus.INITIAL, EffectStatus.INITIAL),
            (EffectStatus.FAILED, EffectStatus.SUCCESS),
            (EffectStatus.FAILED, EffectStatus.FAILED),
            (EffectStatus.SUCCESS, EffectStatus.INITIAL),
            (EffectStatus.SUCCESS, EffectStatus.FAILED),
        ],
    )
    def test_invalid_transition(self, from_status, to_status):
        assert validate_transition(from_status, to_status) is False

    def test_terminal_states_cannot_transition(self):
        for terminal in TERMINAL_STATES:
            for target in EffectStatus:
                assert validate_transition(terminal, target) is False

    def test_transition_to_raises_on_illegal(self):
        effect = _make_effect(status=EffectStatus.SUCCESS, result_id="R1")
        with pytest.raises(StateConflictError) as exc_info:
            transition_to(effect, EffectStatus.FAILED, NOW)
        assert exc_info.value.code == "STATE_CONFLICT"

    def test_transition_returns_copy(self):
        effect = _make_effect()
        later = NOW + timedelta(minutes=1)
        updated = transition_to(effect, EffectStatus.FAILED, later)
        assert updated.status == EffectStatus.FAILED
        assert updated.updated_at == later
        assert effect.status == EffectStatus.INITIAL


class TestMarkSuccess:
    def test_sets_result_and_clears_errors(self):
        effect = _make_effect(last_error_code="500", last_error_message="boom")
        updated = mark_success(effect, "REQ-1", {"status": "success"}, NOW)
        assert updated.status == EffectStatus.SUCCESS
        assert updated.result_id == "REQ-1"
        assert updated.completed_at == NOW
        assert updated.last_error_code is None
        assert updated.next_retry_at is None

    def test_second_success_rejected(self):
        effect = mark_success(_make_effect(), "REQ-1", {}, NOW)
        with pytest.raises(DuplicateResultError) as exc_info:
            mark_success(effect, "REQ-2", {}, NOW)
        assert exc_info.value.existing_result_id == "REQ-1"

    def test_success_from_failed_rejected(self):
        effect = _make_effect(status=EffectStatus.FAILED, attempt_count=1)
        with pytest.raises(StateConflictError):
            mark_success(effect, "REQ-1", {}, NOW)


class TestMarkFailed:
    def test_first_failure_uses_first_table_entry(self):
        updated = mark_failed(_make_effect(), "500", "server error", POLICY, NOW)
        assert updated.status == EffectStatus.FAILED
        assert updated.attempt_count == 1
        assert updated.next_retry_at == NOW + timedelta(minutes=1)
        assert updated.last_error_code == "500"

    def test_exhausted_table_leaves_next_retry_empty(self):
        effect = _make_effect(attempt_count=5)
        updated = mark_failed(effect, "500", "server error", POLICY, NOW)
        assert updated.attempt_count == 6
        assert updated.next_retry_at is None

    def test_error_message_truncated(self):
        updated = mark_failed(_make_effect(), "500", "x" * 5000, POLICY, NOW)
        assert len(updated.last_error_message) == 1000


class TestPrepareRetry:
    def test_failed_back_to_initial(self):
        effect = _make_effect(
            status=EffectStatus.FAILED,
            attempt_count=2,
            next_retry_at=NOW,
            last_error_code="500",
            last_error_message="boom",
        )
        updated = prepare_retry(effect, NOW)
        assert updated.status == EffectStatus.INITIAL
        assert updated.attempt_count == 2
        assert updated.next_retry_at is None
        assert updated.last_error_code is None

    @pytest.mark.parametrize("status", [EffectStatus.INITIAL, EffectStatus.SUCCESS])
    def test_only_failed_can_be_prepared(self, status):
        with pytest.raises(StateConflictError):
            prepare_retry(_make_effect(status=status), NOW)
