"""
FastAPI server for local experimentation and testing.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, UploadFile, File, Form, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse

from ..core import (
    ExtractionOrchestrator,
    GeminiCategoryFinalizer,
    GeminiConfig,
    GeminiPageExtractionClient,
    GeminiService,
    PdfPageExtractor,
    PositionalTableParser,
    TemplateRegistry,
)
from ..core.errors import (
    AlreadyProcessingError,
    DocumentExtractionError,
    PasswordProtectedError,
    StatementExtractionError,
    ValidationMismatchError,
    ValidationServiceError,
)
from ..core.llm_client import JsonGenerationService
from ..utils.processing_log import ProcessingLog
from ..utils.report_generator import ReportGenerator
from ..utils.sanitization import DataSanitizer, SanitizationConfig
from ..validators import GeminiStatementValidator

logger = logging.getLogger(__name__)

OUTPUT_DIR = Path(os.getenv("BSE_OUTPUT_DIR", "output")).resolve()

OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

app = FastAPI(title="Bank Statement Extractor", version="0.1.0")

TEMPLATES = TemplateRegistry()

ERROR_STATUS = {
    AlreadyProcessingError: 409,
    PasswordProtectedError: 422,
    ValidationMismatchError: 422,
    DocumentExtractionError: 422,
    ValidationServiceError: 502,
}


@dataclass
class ExtractionSession:
    """One client's orchestrator and its processing log"""
    session_id: str
    orchestrator: ExtractionOrchestrator
    log: ProcessingLog


# Oldest first; sessions still running a job are never evicted
SESSIONS: "OrderedDict[str, ExtractionSession]" = OrderedDict()

MAX_SESSIONS = int(os.getenv("BSE_MAX_SESSIONS", "32"))


def get_llm_service() -> JsonGenerationService:
    try:
        config = GeminiConfig.from_env()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Missing Gemini config: {e}") from e
    return GeminiService(config)


def get_pdf_extractor() -> PdfPageExtractor:
    return PdfPageExtractor()


def _new_session(session_id: str, service: JsonGenerationService,
                 extractor: PdfPageExtractor) -> ExtractionSession:
    sanitizer = DataSanitizer(SanitizationConfig.from_env())
    log = ProcessingLog()
    orchestrator = ExtractionOrchestrator(
        page_client=GeminiPageExtractionClient(service, sanitizer),
        validator=GeminiStatementValidator(service, sanitizer),
        finalizer=GeminiCategoryFinalizer(service),
        page_source=extractor.extract_pages,
        log=log,
    )
    return ExtractionSession(session_id=session_id, orchestrator=orchestrator, log=log)


def _store_session(session: ExtractionSession) -> None:
    SESSIONS[session.session_id] = session
    SESSIONS.move_to_end(session.session_id)

    idle = [
        sid for sid, s in SESSIONS.items()
        if sid != session.session_id and not s.orchestrator.is_processing
    ]
    while len(SESSIONS) > MAX_SESSIONS and idle:
        evicted = idle.pop(0)
        del SESSIONS[evicted]
        logger.info(f"Evicted idle session {evicted}")


def _sanitize_outputs(output_files: Optional[Dict[str, str]]) -> Dict[str, str]:
    if not output_files:
        return {}

    cleaned: Dict[str, str] = {}
    for key, path_str in output_files.items():
        if not path_str:
            continue
        resolved = Path(path_str).resolve()
        try:
            cleaned[key] = str(resolved.relative_to(OUTPUT_DIR))
        except ValueError:
            cleaned[key] = resolved.name

    return cleaned


async def _read_upload(file: UploadFile) -> bytes:
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    return content


def _document_id(filename: str) -> str:
    return Path(filename).stem or "statement"


@app.exception_handler(StatementExtractionError)
async def extraction_error_handler(request: Request, exc: StatementExtractionError) -> JSONResponse:
    status = next(
        (code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)),
        500
    )
    body: Dict[str, object] = {"code": exc.code, "detail": str(exc)}
    if isinstance(exc, ValidationMismatchError) and exc.validation_result is not None:
        body["validation_result"] = exc.validation_result.to_dict()
    return JSONResponse(status_code=status, content=body)


@app.get("/api/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/templates")
async def list_templates() -> Dict[str, List[Dict[str, object]]]:
    return {
        "templates": [TEMPLATES.get(name).to_dict() for name in TEMPLATES.available()]
    }


@app.post("/api/statements/parse")
async def parse_statement(
    file: UploadFile = File(...),
    template: str = Form("dbs_pdf_v1"),
    extractor: PdfPageExtractor = Depends(get_pdf_extractor),
) -> Dict[str, object]:
    try:
        statement_template = TEMPLATES.get(template)
    except KeyError as e:
        raise HTTPException(status_code=400, detail=str(e.args[0])) from e

    content = await _read_upload(file)
    parser = PositionalTableParser(statement_template)

    loop = asyncio.get_running_loop()
    transactions = await loop.run_in_executor(None, parser.parse_pdf, content, extractor)

    return {
        "document_id": _document_id(file.filename),
        "template": statement_template.identifier,
        "total_transactions": len(transactions),
        "transactions": [t.to_dict() for t in transactions],
    }


@app.post("/api/statements/extract")
async def extract_statement(
    file: UploadFile = File(...),
    bank_name: str = Form(...),
    month: str = Form(...),
    year: str = Form(...),
    categories: str = Form(""),
    session_id: str = Form("default"),
    write_outputs: bool = Form(False),
    service: JsonGenerationService = Depends(get_llm_service),
    extractor: PdfPageExtractor = Depends(get_pdf_extractor),
) -> Dict[str, object]:
    content = await _read_upload(file)
    category_list = [c.strip() for c in categories.split(",") if c.strip()]

    session = SESSIONS.get(session_id)
    if session is None or not session.orchestrator.is_processing:
        session = _new_session(session_id, service, extractor)
        _store_session(session)

    result = await session.orchestrator.process_statement(
        content, bank_name, month, year, category_list
    )

    output_files: Dict[str, str] = {}
    if write_outputs:
        document_id = _document_id(file.filename)
        reports = ReportGenerator(str(OUTPUT_DIR))
        output_files = _sanitize_outputs({
            "csv": reports.generate_csv(result.transactions, document_id),
            "job_report": reports.generate_job_report(result, document_id),
        })

    return {
        "session_id": session_id,
        "result": result.to_dict(),
        "output_files": output_files,
    }


@app.get("/api/sessions/{session_id}/progress")
async def session_progress(session_id: str) -> Dict[str, object]:
    session = SESSIONS.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")

    orchestrator = session.orchestrator
    return {
        "session_id": session_id,
        "is_processing": orchestrator.is_processing,
        "progress": orchestrator.progress.to_dict(),
        "security_breakdown": orchestrator.live_security_breakdown.to_dict(),
        "logs": list(session.log.entries()),
    }


@app.get("/api/outputs/{filename:path}")
async def get_output(filename: str) -> FileResponse:
    candidate = (OUTPUT_DIR / filename).resolve()
    if not candidate.exists() or not candidate.is_file():
        raise HTTPException(status_code=404, detail="Output file not found")

    if OUTPUT_DIR not in candidate.parents:
        raise HTTPException(status_code=404, detail="Invalid output path")

    return FileResponse(candidate)
