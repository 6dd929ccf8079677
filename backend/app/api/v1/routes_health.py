# 健康检查

from fastapi import APIRouter

router = APIRouter(tags=["health"])

@router.get("/health")
def health():
    # 只做进程探活，不碰 DB
    return {"status": "ok"}
