"""
内容提供方（EGW Writings GraphQL）客户端

抓取整本书并规整为 BookPayload：按章节分组、段落去首尾空白、丢弃空段落、保留 refcode。
"""
import logging
from typing import Any, Optional

import httpx
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from bookwatch.core.book_cache import BookIdentityCache, get_book_cache
from bookwatch.core.config import settings
from bookwatch.core.database import get_db
from bookwatch.schemas.book import BookPayload, ChapterPayload, ParagraphPayload

logger = logging.getLogger(__name__)

BOOK_QUERY = """
query GetBook($pubCode: String!, $lang: String!) {
  publication(pubCode: $pubCode, lang: $lang) {
    title
    pubCode
    content {
      chapter
      chapterTitle
      paragraphs {
        content
        refcode_short
      }
    }
  }
}
"""


def normalize_publication(data: dict[str, Any], code: str, fallback_title: Optional[str] = None) -> BookPayload:
    chapters: dict[int, ChapterPayload] = {}
    for item in data.get("content") or []:
        if not isinstance(item, dict):
            continue
        try:
            number = int(item.get("chapter") or 1)
        except (TypeError, ValueError):
            logger.warning("书籍 %s 的章节号无法解析: %r，跳过", code, item.get("chapter"))
            continue

        chapter = chapters.get(number)
        if chapter is None:
            chapter = ChapterPayload(number=number, title=item.get("chapterTitle") or f"Capítulo {number}")
            chapters[number] = chapter

        for para in item.get("paragraphs") or []:
            if not isinstance(para, dict):
                continue
            content = (para.get("content") or "").strip()
            if not content:
                continue
            refcode = (para.get("refcode_short") or "").strip() or None
            chapter.paragraphs.append(ParagraphPayload(content=content, refcode=refcode))

    return BookPayload(
        title=data.get("title") or fallback_title or "Título desconocido",
        code=code.upper(),
        chapters=[chapters[n] for n in sorted(chapters)],
    )


class ProviderClient:
    def __init__(
        self,
        db: Session,
        cache: BookIdentityCache,
        *,
        api_url: Optional[str] = None,
        language: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.cache = cache
        self.api_url = api_url or settings.PROVIDER_API_URL
        self.language = language or settings.PROVIDER_LANGUAGE
        self.timeout_seconds = timeout_seconds or settings.PROVIDER_TIMEOUT_SECONDS
        self.transport = transport

    async def fetch_book(self, code: str, language: Optional[str] = None) -> BookPayload:
        code = (code or "").strip().upper()
        identity = self.cache.resolve(self.db, code)
        if identity is not None and not identity.is_active:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"书目中 {code} 已停用")

        lang = language or (identity.language if identity else None) or self.language
        logger.info(
            "从提供方抓取书籍 %s（provider_id=%s, lang=%s）",
            code,
            identity.provider_book_id if identity else None,
            lang,
        )

        timeout = httpx.Timeout(self.timeout_seconds, connect=10.0)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                resp = await client.post(
                    self.api_url,
                    headers={"Content-Type": "application/json"},
                    json={"query": BOOK_QUERY, "variables": {"pubCode": code, "lang": lang}},
                )
        except httpx.TimeoutException as exc:
            logger.warning("抓取书籍 %s 超时（%ss）", code, self.timeout_seconds)
            raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="内容提供方请求超时") from exc
        except httpx.HTTPError as exc:
            logger.warning("抓取书籍 %s 失败: %s", code, exc)
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="内容提供方请求失败") from exc

        if resp.status_code >= 400:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"内容提供方请求失败 ({resp.status_code})",
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="内容提供方返回格式异常") from exc

        if not isinstance(body, dict):
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="内容提供方返回格式异常")
        if body.get("errors"):
            messages = ", ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in body["errors"])
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"内容提供方返回错误: {messages}")

        publication = (body.get("data") or {}).get("publication")
        if not isinstance(publication, dict):
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"提供方没有书籍 {code} 的内容")

        payload = normalize_publication(publication, code, fallback_title=identity.title if identity else None)
        if not payload.chapters:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"书籍 {code} 没有任何章节内容")
        return payload


def get_book_source(
    db: Session = Depends(get_db),
    cache: BookIdentityCache = Depends(get_book_cache),
) -> ProviderClient:
    return ProviderClient(db, cache)
