"""Placeholder landing pages per role (rendering is out of scope)."""
from __future__ import annotations

from html import escape

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

pages_router = APIRouter(tags=["Pages"], include_in_schema=False)

_TITLES = {
    "/dashboard": "Dashboard",
    "/guru": "Beranda Guru",
    "/guruwali": "Beranda Guru Wali",
    "/siswa": "Beranda Siswa",
    "/orangtua": "Beranda Orang Tua",
    "/unknown": "Akun Belum Terdaftar",
    "/login": "Masuk",
}


def _page(title: str) -> HTMLResponse:
    body = f"<!doctype html><html><head><title>{escape(title)}</title></head><body><h1>{escape(title)}</h1></body></html>"
    return HTMLResponse(body, headers={"Cache-Control": "private, no-store"})


def _register(path: str, title: str) -> None:
    async def _handler(request: Request) -> HTMLResponse:
        return _page(title)

    _handler.__name__ = "page_" + (path.strip("/") or "root")
    pages_router.add_api_route(path, _handler, methods=["GET"], response_class=HTMLResponse)


for _path, _title in _TITLES.items():
    _register(_path, _title)
