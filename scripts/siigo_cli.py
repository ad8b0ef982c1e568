import asyncio
import json
import sys
from datetime import date
from pathlib import Path
from typing import Optional

import typer
from loguru import logger

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.modules.siigo.client import SiigoAuthError
from src.modules.siigo.di import get_analytics_service, get_fetcher, get_token_provider
from src.modules.siigo.models import DateRange


app = typer.Typer(help="Herramientas de consulta de compras en Siigo")


def _parse_day(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise typer.BadParameter(f"{name} debe tener formato YYYY-MM-DD") from exc


def _dump(data: object, out: Optional[Path]) -> None:
    text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
    typer.echo(text)
    if out:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
        typer.echo(f"Resultado guardado en {out}")


@app.command()
def token() -> None:
    """Obtiene un token de acceso y muestra su prefijo."""
    value = asyncio.run(get_token_provider().get_token())
    if not value:
        typer.echo("No se pudo obtener el token", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Token: {value[:10]}...")


@app.command()
def purchases(
    start: Optional[str] = typer.Option(None, help="Fecha inicial (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, help="Fecha final (YYYY-MM-DD)"),
    concurrent: bool = typer.Option(False, help="Descargar páginas 2..N en paralelo"),
    max_pages: Optional[int] = typer.Option(None, min=1, help="Límite de páginas"),
    out: Optional[Path] = typer.Option(None, help="Archivo JSON de salida"),
) -> None:
    """Descarga todas las compras del rango indicado."""
    date_range = DateRange(start=_parse_day(start, "start"), end=_parse_day(end, "end"))

    async def run() -> dict:
        value = await get_token_provider().get_token()
        if not value:
            raise SiigoAuthError("No se pudo obtener el token")
        result = await get_fetcher().fetch_all(
            value, date_range, concurrent=concurrent, max_pages=max_pages
        )
        return {
            "results": result.records,
            "pages_fetched": result.pages_fetched,
            "pages_failed": result.failed_pages,
            "complete": result.complete,
        }

    try:
        data = asyncio.run(run())
    except SiigoAuthError as exc:
        typer.echo(f"Error de autenticación: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    _dump(data, out)
    typer.echo(f"{len(data['results'])} compras, {data['pages_fetched']} páginas", err=True)


@app.command()
def analytics(
    period: str = typer.Option("6m", help="today, 1m, 3m, 6m o 1y"),
    out: Optional[Path] = typer.Option(None, help="Archivo JSON de salida"),
) -> None:
    """Calcula el reporte de analítica de compras."""
    try:
        report = asyncio.run(get_analytics_service().build_report(period))
    except SiigoAuthError as exc:
        logger.error(f"Authentication failed: {exc}")
        raise typer.Exit(code=1) from exc

    _dump(report.model_dump(by_alias=True), out)


if __name__ == "__main__":
    app()
