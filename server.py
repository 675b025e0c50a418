import uvicorn
from typing import List, Optional
from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from epubsmith.models import log, Book, RawChapter, EpubBuildError, EPUB_MIMETYPE
from epubsmith.core.config import load_config
from epubsmith.core.packager import EpubPackager

app = FastAPI()

@app.middleware("http")
async def log_requests(request, call_next):
    log.info(f"Incoming request: {request.method} {request.url}")
    response = await call_next(request)
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

class ChapterItem(BaseModel):
    title: str = ""
    content: str = ""

class BookRequest(BaseModel):
    title: str
    author: str = ""
    cover: Optional[str] = None
    description: Optional[str] = None
    chapters: List[ChapterItem] = Field(min_length=1)

    def to_book(self) -> Book:
        return Book(
            title=self.title,
            author=self.author,
            cover_url=self.cover or "",
            chapters=[RawChapter(title=c.title, html_content=c.content) for c in self.chapters],
            description=self.description or "",
        )

@app.get("/ping")
async def ping(): return {"status": "ok"}

@app.post("/build")
async def build(req: BookRequest):
    log.info(f"Received book '{req.title}' with {len(req.chapters)} chapters")
    config = load_config()
    try:
        data, filename = await EpubPackager.build_archive(req.to_book(), config=config)
    except EpubBuildError as e:
        log.error(f"EPUB build failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    log.info(f"Sending: {filename}")
    return Response(
        content=data,
        media_type=EPUB_MIMETYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
