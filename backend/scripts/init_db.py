"""初始化数据库脚本

创建 slack_summaries / integrations / user_settings 三张表。

使用方法：
    python -m scripts.init_db            # 只创建缺失的表
    python -m scripts.init_db --reset    # 删除所有表后重建（会丢失全部数据）
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# 添加项目根目录到 Python 路径
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from app.core.config import settings
from app.core.db import Base, dispose_engine, get_engine, import_models, init_models

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def drop_all() -> None:
    import_models()
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info(f"已删除 {len(Base.metadata.tables)} 个表")


async def main(reset: bool = False) -> None:
    try:
        if reset:
            print("\n" + "=" * 60)
            print("⚠️  警告：此操作将删除所有摘要、集成和用户设置！")
            print("=" * 60)
            confirm = input("\n确认要重建数据库吗？输入 'YES' 继续: ")
            if confirm != "YES":
                print("操作已取消")
                return
            await drop_all()

        logger.info("开始初始化数据库...")
        await init_models()
        logger.info("数据库初始化完成！")
        logger.info(f"数据库地址: {settings.database_url}")
    except Exception as e:
        logger.error(f"数据库初始化失败: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await dispose_engine()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="初始化数据库")
    parser.add_argument("--reset", action="store_true", help="删除所有表后重建")
    args = parser.parse_args()
    asyncio.run(main(reset=args.reset))
