"""CLI 入口模块 -- python -m sellsync.core <command>

支持的命令：
  init-db                          创建表结构
  list-retryable <domain> <tenant> 列出到期可重试的记录
  list-exceeded <domain> <tenant>  列出已用尽重试、需人工处理的记录
"""

import asyncio
import sys
from datetime import UTC, datetime

from .config import get_db_path
from .exceptions import EffectValidationError
from .models.domain import get_domain_spec
from .retry import default_retry_policies

_USAGE = """用法: python -m sellsync.core <command>
命令:
  init-db                          创建表结构
  list-retryable <domain> <tenant> 列出到期可重试的记录
  list-exceeded <domain> <tenant>  列出已用尽重试、需人工处理的记录"""


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command in ("list-retryable", "list-exceeded"):
        if len(sys.argv) < 4:
            print(_USAGE)
            sys.exit(1)
        try:
            get_domain_spec(sys.argv[2])
        except EffectValidationError as e:
            print(str(e))
            sys.exit(1)
        asyncio.run(list_effects(command, sys.argv[2], sys.argv[3]))
    else:
        print(f"未知命令: {command}")
        print("可用命令: init-db, list-retryable, list-exceeded")
        sys.exit(1)


async def init_database() -> None:
    """执行建表"""
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    store_group = await create_store_group(db_path)
    await store_group.conn.close()
    print("初始化完成")


async def list_effects(command: str, domain: str, tenant_id: str) -> None:
    """输出记录列表，每行一条"""
    from .store import create_store_group

    spec = get_domain_spec(domain)
    policy = default_retry_policies()[spec.domain]
    store_group = await create_store_group(get_db_path())

    try:
        store = store_group.effects(spec.domain)
        if command == "list-retryable":
            effects = await store.list_retryable(
                tenant_id, datetime.now(UTC), policy.max_attempts
            )
        else:
            effects = await store.list_max_retry_exceeded(tenant_id, policy.max_attempts)

        for effect in effects:
            print(
                f"{effect.effect_id}\t{effect.status_label}\t"
                f"attempts={effect.attempt_count}\t"
                f"next_retry_at={effect.next_retry_at.isoformat() if effect.next_retry_at else '-'}\t"
                f"{effect.last_error_code or ''} {effect.last_error_message or ''}"
            )
        print(f"共 {len(effects)} 条")
    finally:
        await store_group.conn.close()


if __name__ == "__main__":
    main()
