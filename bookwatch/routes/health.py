# 健康检查端点
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from bookwatch.core.database import get_db
import time

router = APIRouter()


@router.get("")
async def health_check(db: Session = Depends(get_db)):
    """
    健康检查端点 - 用于负载均衡器/监控系统
    返回服务状态和数据库连接状态
    """
    start = time.time()

    db_status = "healthy"
    db_latency_ms = 0
    try:
        db_start = time.time()
        db.execute(text("SELECT 1"))
        db_latency_ms = round((time.time() - db_start) * 1000, 2)
    except SQLAlchemyError as e:
        db_status = f"unhealthy: {str(e)}"

    total_latency_ms = round((time.time() - start) * 1000, 2)

    status = "healthy" if db_status == "healthy" else "degraded"

    return {
        "status": status,
        "timestamp": time.time(),
        "checks": {
            "database": {
                "status": db_status,
                "latency_ms": db_latency_ms
            }
        },
        "latency_ms": total_latency_ms
    }


@router.get("/ready")
async def readiness_check(db: Session = Depends(get_db)):
    """
    就绪检查：数据库可连接才算就绪
    """
    try:
        db.execute(text("SELECT 1"))
        return {"ready": True}
    except SQLAlchemyError:
        raise HTTPException(status_code=503, detail="数据库不可用，服务未就绪")


@router.get("/live")
async def liveness_check():
    """存活检查 - 只要进程还在运行就返回 200"""
    return {"alive": True}
