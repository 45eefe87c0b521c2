import asyncio
import logging

from schemaflow import BackendConfig, EditorSession, LayoutDirection

logging.basicConfig(level=logging.INFO)

# Reads SCHEMAFLOW_URL and SCHEMAFLOW_TIMEOUT from the environment
config = BackendConfig.from_env()

# Or point at a backend directly:
# config = BackendConfig(url="http://localhost:3000", timeout=10)


async def main():
    async with EditorSession(config=config) as session:
        await session.load_schema()
        session.layout(LayoutDirection.LR)

        for issue in session.issues:
            print(f"skipped: {issue.message}")

        session.store.snapshot().to_yaml("canvas.yaml")


asyncio.run(main())
