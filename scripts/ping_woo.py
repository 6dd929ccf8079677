import asyncio
import json
import os
import sys

from app.core.logging import configure_logging
from app.integrations.woo import WooCommerceClient


async def main(url: str, key: str, secret: str) -> int:
    async with WooCommerceClient(url, key, secret) as cli:
        result = await cli.test_connection()
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.auth else 1


if __name__ == "__main__":
    configure_logging()
    url = sys.argv[1] if len(sys.argv) > 1 else os.environ["WOO_URL"]
    sys.exit(asyncio.run(main(url, os.environ["WOO_CONSUMER_KEY"], os.environ["WOO_CONSUMER_SECRET"])))


# 运行
# export WOO_CONSUMER_KEY=ck_xxx WOO_CONSUMER_SECRET=cs_xxx
# PYTHONPATH=backend python scripts/ping_woo.py https://shop.example



# reachable / auth 都是 true，且 details.products_ok=true 说明站点和密钥权限都 OK
