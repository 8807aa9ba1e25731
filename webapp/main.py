from __future__ import annotations

import logging
import math
import secrets
import shutil
from datetime import date
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse, Response
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from spendlens import config as config_manager
from spendlens.config import Settings
from spendlens.exceptions import DataNotFoundError
from spendlens.formatting import (
    filter_by_month,
    filter_by_year,
    fmt_amount,
    fmt_month_year,
    get_currency,
    make_month_nav,
    make_year_nav,
)
from spendlens.importers import detect_importer, list_importers, peek_headers
from spendlens.summary import run_summary
from spendlens.summary_service import export_qif, get_summary, load_transactions, save_transactions
from webapp.runner import PipelineRunner

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
PAGE_SIZE = 50


def active_page(path: str) -> str:
    if path == "/":
        return "home"
    if path.startswith("/transactions"):
        return "transactions"
    if path.startswith("/years"):
        return "summaries"
    if path.startswith("/manage"):
        return "manage"
    return ""


def _paginate(items: list, page: Optional[int]):
    total_pages = max(1, math.ceil(len(items) / PAGE_SIZE))
    current = min(max(page or 1, 1), total_pages)
    start = (current - 1) * PAGE_SIZE
    return items[start:start + PAGE_SIZE], current, total_pages


def _parse_float(value: Optional[str]) -> Optional[float]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _safe_redirect(target: Optional[str], fallback: str) -> str:
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return fallback


class ProtectedStaticFiles(StaticFiles):
    """Static files behind the same basic-auth check as the pages."""

    def __init__(self, *, auth_check, **kwargs):
        super().__init__(**kwargs)
        self.auth_check = auth_check

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            try:
                await self.auth_check(Request(scope, receive))
            except HTTPException as exc:
                response = PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)
                await response(scope, receive, send)
                return
        await super().__call__(scope, receive, send)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    config_manager.ensure_config_file(settings.config_path)
    if settings.categorized_path.exists():
        logger.info("Generating %s...", settings.summary_path)
        run_summary(settings)

    security = HTTPBasic(auto_error=False)

    def require_auth(credentials: Optional[HTTPBasicCredentials] = Depends(security)) -> None:
        if not settings.auth_enabled:
            return
        challenge = {"WWW-Authenticate": 'Basic realm="Protected"'}
        if credentials is None:
            raise HTTPException(status_code=401, detail="Authentication required", headers=challenge)
        user_ok = secrets.compare_digest(credentials.username.encode(), settings.username.encode())
        pass_ok = secrets.compare_digest(credentials.password.encode(), settings.password.encode())
        if not (user_ok and pass_ok):
            raise HTTPException(status_code=401, detail="Invalid credentials", headers=challenge)

    async def check_request(request: Request) -> None:
        require_auth(await security(request))

    app = FastAPI(title="SpendLens", dependencies=[Depends(require_auth)])
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.state.settings = settings
    app.state.runner = PipelineRunner(settings)
    app.mount(
        "/static",
        ProtectedStaticFiles(auth_check=check_request, directory=str(BASE_DIR / "static")),
        name="static",
    )

    templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
    templates.env.globals["fmt_currency"] = (
        lambda value, currency=None: fmt_amount(value, get_currency(currency or settings.default_currency))
    )
    templates.env.globals["fmt_month_year"] = fmt_month_year

    def render(request: Request, name: str, status_code: int = 200, **context):
        context.setdefault("currency", request.query_params.get("currency") or settings.default_currency)
        context["active_page"] = active_page(request.url.path)
        return templates.TemplateResponse(request, name, context, status_code=status_code)

    def regenerate_summary() -> None:
        if settings.categorized_path.exists():
            run_summary(settings)

    def apply_bulk(selected: List[str], action: str, category: Optional[str]) -> None:
        indices = {int(i) for i in selected if str(i).strip().lstrip("-").isdigit()}
        if not indices:
            return
        transactions = load_transactions(settings)
        if action == "delete":
            transactions = [tx for i, tx in enumerate(transactions) if i not in indices]
        elif action == "set_category" and category and category.strip():
            transactions = [
                tx.with_category(category.strip()) if i in indices else tx
                for i, tx in enumerate(transactions)
            ]
        else:
            return
        save_transactions(settings, transactions)
        logger.info("Bulk %s applied to %d transaction(s)", action, len(indices))
        regenerate_summary()

    # -------------------------------------------------------------------------
    # Error pages
    # -------------------------------------------------------------------------

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            logger.warning("404 Not Found: %s %s", request.method, request.url.path)
            return render(request, "error.html", status_code=404,
                          error={"status": 404, "message": "Not Found"})
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(DataNotFoundError)
    async def data_not_found(request: Request, exc: DataNotFoundError):
        return render(request, "error.html", status_code=404,
                      error={"status": 404, "message": str(exc)})

    @app.exception_handler(Exception)
    async def server_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return render(request, "error.html", status_code=500,
                      error={"status": 500, "message": "Internal Server Error"})

    # -------------------------------------------------------------------------
    # Dashboard and API
    # -------------------------------------------------------------------------

    @app.get("/")
    async def dashboard(request: Request, year: Optional[str] = None):
        year = year or str(date.today().year)
        summary = get_summary(settings)
        yearly = next((y for y in summary["yearly_summary"] if y.get("year") == year), None)
        spending = sorted(filter_by_year(summary["monthly_spending"], year), key=lambda s: s["month"])
        flagged = filter_by_year(summary["anomalies"].get("outliers", []), year)
        usage = summary["merchant_insights"].get("usage_over_time", {})
        merchants = [
            {"merchant": m, "total": round(sum(v for mo, v in months.items() if mo.startswith(f"{year}-")), 2)}
            for m, months in usage.items()
        ]
        merchants.sort(key=lambda m: m["total"], reverse=True)
        top_merchant = merchants[0] if merchants else {"merchant": "", "total": 0}
        years = [y["year"] for y in summary["yearly_summary"]]
        return render(
            request,
            "dashboard.html",
            year=year,
            yearly=yearly,
            spending=spending,
            num_flagged=len(flagged),
            recurring_count=len(summary["trends"].get("recurring_bills", [])),
            top_merchant=top_merchant,
            nav=make_year_nav(years, year),
        )

    @app.get("/api/summary")
    async def api_summary(month: Optional[str] = None):
        return JSONResponse(get_summary(settings, month=month))

    @app.get("/favicon.ico", include_in_schema=False)
    async def favicon():
        return Response(status_code=204)

    # -------------------------------------------------------------------------
    # Annual and monthly summaries
    # -------------------------------------------------------------------------

    @app.get("/years")
    async def all_years(request: Request):
        summary = get_summary(settings)
        spending_by_year = {}
        for item in summary["monthly_spending"]:
            yr = item["month"].split("-")[0]
            spending_by_year[yr] = spending_by_year.get(yr, 0.0) + item["spending"]
        return render(
            request,
            "years.html",
            title="Annual Summaries",
            years=summary["yearly_summary"],
            spending_by_year=spending_by_year,
        )

    @app.get("/years/{year}")
    async def show_year(request: Request, year: str):
        summary = get_summary(settings)
        yearly = next((y for y in summary["yearly_summary"] if y.get("year") == year), None)
        months = sorted(filter_by_year(summary["monthly_overview"], year), key=lambda m: m["month"])
        spending = sorted(filter_by_year(summary["monthly_spending"], year), key=lambda s: s["month"])
        spending_by_month = {s["month"]: s["spending"] for s in spending}
        years = [y["year"] for y in summary["yearly_summary"]]
        return render(
            request,
            "year.html",
            title=f"{year} Summary",
            year=year,
            yearly=yearly,
            months=months,
            spending=spending,
            spending_by_month=spending_by_month,
            annual_spending=round(sum(spending_by_month.values()), 2),
            nav=make_year_nav(years, year),
        )

    @app.get("/years/{year}/insights")
    async def show_year_insights(request: Request, year: str):
        summary = get_summary(settings)
        months = sorted(s["month"] for s in filter_by_year(summary["monthly_spending"], year))
        per_month = summary["category_breakdown"]["per_month"]
        distribution = {}
        for month in months:
            for cat, amount in (per_month.get(month) or {}).get("categories", {}).items():
                distribution[cat] = round(distribution.get(cat, 0.0) + amount, 2)

        usage = summary["merchant_insights"].get("usage_over_time", {})
        recurring = []
        for item in summary["trends"].get("recurring_bills", []):
            values = [usage.get(item["description"], {}).get(m, 0) for m in months]
            values = [v for v in values if v > 0]
            if values:
                total = sum(values)
                recurring.append({
                    "description": item["description"],
                    "category": item["category"],
                    "occurrences": len(values),
                    "total": round(total, 2),
                    "avg_amount": round(total / len(values), 2),
                })
        years = [y["year"] for y in summary["yearly_summary"]]
        return render(
            request,
            "year_insights.html",
            title=f"{year} Insights",
            year=year,
            distribution=distribution,
            usage=usage,
            usage_by_category=summary["merchant_insights"].get("usage_over_time_by_category", {}),
            flagged=filter_by_year(summary["anomalies"].get("outliers", []), year),
            recurring=recurring,
            nav=make_year_nav(years, year),
        )

    @app.get("/years/{year}/{month}")
    async def show_month(request: Request, year: str, month: str):
        ym = f"{year}-{month.zfill(2)}"
        full = get_summary(settings)
        summary = get_summary(settings, month=ym)
        overview = summary["monthly_overview"][0] if summary["monthly_overview"] else None
        breakdown = summary["category_breakdown"]["per_month"].get(ym)
        rows = []
        if breakdown:
            changes = breakdown.get("change_vs_previous", {})
            budgets = breakdown.get("budget_vs_actual", {})
            for cat, amount in breakdown.get("categories", {}).items():
                rows.append({
                    "category": cat,
                    "amount": amount,
                    "change": changes.get(cat),
                    "budget": budgets.get(cat, {}),
                })
            rows.sort(key=lambda r: r["change"] if r["change"] is not None else float("-inf"), reverse=True)
        spending = sorted(full["monthly_spending"], key=lambda s: s["month"])
        months = [s["month"] for s in spending]
        return render(
            request,
            "month.html",
            title=f"Summary for {fmt_month_year(ym)}",
            year=year,
            month=month.zfill(2),
            ym=ym,
            overview=overview,
            month_spending=next((s["spending"] for s in spending if s["month"] == ym), 0),
            spending=spending,
            rows=rows,
            nav=make_month_nav(months, year, month),
        )

    @app.get("/years/{year}/{month}/insights")
    async def show_month_insights(request: Request, year: str, month: str):
        ym = f"{year}-{month.zfill(2)}"
        full = get_summary(settings)
        summary = get_summary(settings, month=ym)
        breakdown = summary["category_breakdown"]["per_month"].get(ym) or {}
        usage = summary["merchant_insights"].get("usage_over_time", {})
        recurring = [
            item for item in summary["trends"].get("recurring_bills", [])
            if usage.get(item["description"], {}).get(ym, 0) > 0
        ]
        months = sorted(s["month"] for s in full["monthly_spending"])
        return render(
            request,
            "month_insights.html",
            title=f"Insights for {fmt_month_year(ym)}",
            year=year,
            month=month.zfill(2),
            ym=ym,
            daily=summary["daily_spending"],
            distribution=breakdown.get("categories", {}),
            spikes=[s for s in summary["anomalies"].get("spikes", []) if s.get("month") == ym],
            usage=usage,
            usage_by_category=summary["merchant_insights"].get("usage_over_time_by_category", {}),
            flagged=filter_by_month(summary["anomalies"].get("outliers", []), ym),
            recurring=recurring,
            nav=make_month_nav(months, year, month),
        )

    @app.get("/years/{year}/{month}/category/{category}")
    async def show_category(request: Request, year: str, month: str, category: str):
        ym = f"{year}-{month.zfill(2)}"
        transactions = [
            tx for tx in load_transactions(settings)
            if tx.category == category and tx.month == ym
        ]
        return render(
            request,
            "category.html",
            title=f"Transactions for {category} in {fmt_month_year(ym)}",
            year=year,
            month=month.zfill(2),
            ym=ym,
            category=category,
            transactions=transactions,
            total=round(sum(tx.amount for tx in transactions), 2),
        )

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @app.get("/years/{year}/{month}/transactions")
    async def month_transactions(request: Request, year: str, month: str, page: Optional[int] = None):
        ym = f"{year}-{month.zfill(2)}"
        if not settings.categorized_path.exists():
            raise DataNotFoundError("Transaction data not found")
        indexed = [(i, tx) for i, tx in enumerate(load_transactions(settings)) if tx.month == ym]
        items, current, total_pages = _paginate(indexed, page)
        return render(
            request,
            "transactions.html",
            title=f"Transactions for {fmt_month_year(ym)}",
            rows=items,
            total_count=len(indexed),
            current_page=current,
            total_pages=total_pages,
            all_categories=get_summary(settings)["categories_list"],
            filters={},
            page_url=f"/years/{year}/{month.zfill(2)}/transactions",
            bulk_url=f"/years/{year}/{month.zfill(2)}/transactions/bulk",
        )

    @app.post("/years/{year}/{month}/transactions/bulk")
    async def month_bulk(
        year: str,
        month: str,
        selected: List[str] = Form(default=[]),
        action: str = Form(""),
        category: Optional[str] = Form(None),
        redirect: Optional[str] = Form(None),
    ):
        await run_in_threadpool(apply_bulk, selected, action, category)
        fallback = f"/years/{year}/{month.zfill(2)}/transactions"
        return RedirectResponse(_safe_redirect(redirect, fallback), status_code=303)

    @app.get("/transactions")
    async def all_transactions(
        request: Request,
        year: Optional[str] = None,
        month: Optional[str] = None,
        category: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        amount_min: Optional[str] = None,
        amount_max: Optional[str] = None,
        page: Optional[int] = None,
    ):
        stored = load_transactions(settings)
        indexed = list(enumerate(stored))
        if year:
            indexed = [(i, tx) for i, tx in indexed if tx.year == year]
        if month:
            # YYYY-MM, or a bare month number
            if "-" in month:
                indexed = [(i, tx) for i, tx in indexed if tx.month == month]
            else:
                indexed = [(i, tx) for i, tx in indexed
                           if tx.date and tx.date.strftime("%m") == month.zfill(2)]
        if category:
            indexed = [(i, tx) for i, tx in indexed if tx.category == category]
        if date_from:
            indexed = [(i, tx) for i, tx in indexed if tx.date and tx.date.isoformat() >= date_from]
        if date_to:
            indexed = [(i, tx) for i, tx in indexed if tx.date and tx.date.isoformat() <= date_to]
        low, high = _parse_float(amount_min), _parse_float(amount_max)
        if low is not None:
            indexed = [(i, tx) for i, tx in indexed if tx.amount >= low]
        if high is not None:
            indexed = [(i, tx) for i, tx in indexed if tx.amount <= high]
        indexed.sort(key=lambda pair: pair[1].date.isoformat() if pair[1].date else "", reverse=True)

        items, current, total_pages = _paginate(indexed, page)
        categories = sorted({tx.category for tx in stored if tx.category})
        filters = {
            "year": year or "",
            "month": month or "",
            "category": category or "",
            "date_from": date_from or "",
            "date_to": date_to or "",
            "amount_min": amount_min or "",
            "amount_max": amount_max or "",
        }
        return render(
            request,
            "transactions.html",
            title="All Transactions",
            rows=items,
            total_count=len(indexed),
            current_page=current,
            total_pages=total_pages,
            all_categories=categories,
            filters=filters,
            page_url="/transactions",
            bulk_url="/transactions/bulk",
        )

    @app.post("/transactions/bulk")
    async def bulk_actions(
        selected: List[str] = Form(default=[]),
        action: str = Form(""),
        category: Optional[str] = Form(None),
        redirect: Optional[str] = Form(None),
    ):
        await run_in_threadpool(apply_bulk, selected, action, category)
        return RedirectResponse(_safe_redirect(redirect, "/transactions"), status_code=303)

    # -------------------------------------------------------------------------
    # Data management
    # -------------------------------------------------------------------------

    @app.get("/manage")
    async def manage(request: Request, msg: Optional[str] = None,
                     message: Optional[str] = None, error: Optional[str] = None):
        config = config_manager.load_config(settings.config_path)
        return render(
            request,
            "manage.html",
            title="Manage Data",
            categories=config.get("categories") or {},
            show_msg=msg == "defaults_loaded",
            message=message,
            error=error,
            importers=list_importers(),
            run_status=request.app.state.runner.status_payload(),
        )

    @app.get("/manage/export")
    async def export(format: Optional[str] = None):
        if format != "qif":
            return PlainTextResponse("Unsupported format", status_code=400)
        qif = export_qif(settings)
        return Response(
            content=qif,
            media_type="application/x-qif",
            headers={"Content-Disposition": 'attachment; filename="export.qif"'},
        )

    @app.post("/manage")
    async def upload(request: Request, files: Optional[List[UploadFile]] = File(None)):
        uploads = [f for f in files or [] if f.filename]
        if not uploads:
            return PlainTextResponse("No files uploaded.", status_code=400)

        import_dir = Path(settings.import_dir)
        import_dir.mkdir(parents=True, exist_ok=True)
        saved = []
        used_classifiers = set()
        for upload_file in uploads:
            name = Path(upload_file.filename).name
            target = import_dir / name
            with target.open("wb") as fp:
                shutil.copyfileobj(upload_file.file, fp)
            importer = detect_importer(peek_headers(target))
            if importer is not None:
                used_classifiers.add(importer.default_classifier)
            saved.append({"original": upload_file.filename, "saved": name,
                          "importer": importer.name if importer else None})
        classifier = next(iter(used_classifiers)) if len(used_classifiers) == 1 else None

        result, error = None, None
        try:
            result = await run_in_threadpool(request.app.state.runner.run_pipeline, classifier)
        except RuntimeError as exc:
            error = str(exc)
        return render(
            request,
            "upload_results.html",
            title="Upload Results",
            files=saved,
            classifier=classifier,
            result=result,
            error=error,
        )

    @app.post("/manage/reset")
    async def reset_data():
        if settings.data_dir.exists():
            shutil.rmtree(settings.data_dir)
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        config_manager.ensure_config_file(settings.config_path)
        logger.info("Reset data directory %s", settings.data_dir)
        return RedirectResponse("/manage", status_code=303)

    @app.post("/manage/load-default-categories")
    async def load_default_categories():
        config_manager.load_default_categories(settings.config_path)
        return RedirectResponse("/manage?msg=defaults_loaded", status_code=303)

    @app.post("/manage/categories/add")
    async def add_category(name: str = Form(...), keywords: str = Form("")):
        clean_name = name.strip()
        if not clean_name:
            return RedirectResponse("/manage?error=Category%20name%20is%20required", status_code=303)
        categories = config_manager.load_config(settings.config_path).get("categories") or {}
        if clean_name in categories:
            return RedirectResponse("/manage?error=Category%20already%20exists", status_code=303)
        words = [k.strip() for k in keywords.split(",") if k.strip()]
        config_manager.add_category(settings.config_path, clean_name, words)
        return RedirectResponse("/manage?message=Category%20added", status_code=303)

    @app.post("/manage/categories/delete")
    async def delete_category(name: str = Form(...)):
        config_manager.delete_category(settings.config_path, name)
        return RedirectResponse("/manage?message=Category%20deleted", status_code=303)

    @app.post("/manage/categories/rename")
    async def rename_category(old_name: str = Form(...), new_name: str = Form(...)):
        old = old_name.strip()
        new = new_name.strip()
        if not new:
            return RedirectResponse("/manage?error=New%20name%20is%20required", status_code=303)
        categories = config_manager.load_config(settings.config_path).get("categories") or {}
        if old not in categories:
            return RedirectResponse("/manage?error=Category%20not%20found", status_code=303)
        if new in categories:
            return RedirectResponse("/manage?error=Category%20name%20already%20in%20use", status_code=303)
        config_manager.rename_category(settings.config_path, old, new)
        return RedirectResponse("/manage?message=Category%20renamed", status_code=303)

    return app
