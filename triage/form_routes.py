# triage/form_routes.py
"""
HTTP surface for the interactive form: one in-memory InteractiveForm per
browser session, driven step by step by the page served at GET /.
"""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import settings
from .errors import ConfigurationError, TriageError, UpstreamError, ValidationError
from .form import InteractiveForm
from .runtime import get_logger

logger = get_logger("form_routes")

router = APIRouter(tags=["Form"])


# -----------------------------
# Session store
# -----------------------------
class FormStore:
    """
    In-memory sessions, least recently used first. Sessions idle longer than
    `ttl` seconds are swept on every create; past `max_sessions` the oldest go.
    """

    def __init__(
        self,
        max_sessions: Optional[int] = None,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        s = settings()
        self.max_sessions = max(1, max_sessions if max_sessions is not None else s.FORM_MAX_SESSIONS)
        self.ttl = ttl if ttl is not None else s.FORM_SESSION_TTL
        self._clock = clock
        self._forms: "OrderedDict[str, Tuple[InteractiveForm, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def _sweep(self, now: float) -> None:
        evicted = 0
        if self.ttl and self.ttl > 0:
            while self._forms:
                seen = next(iter(self._forms.values()))[1]
                if now - seen < self.ttl:
                    break
                self._forms.popitem(last=False)
                evicted += 1
        while len(self._forms) >= self.max_sessions:
            self._forms.popitem(last=False)
            evicted += 1
        if evicted:
            logger.info("🧹 Evicted %d form session(s); %d kept", evicted, len(self._forms))

    def create(self, form: InteractiveForm) -> str:
        form_id = uuid.uuid4().hex
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._forms[form_id] = (form, now)
        return form_id

    def get(self, form_id: str) -> InteractiveForm:
        with self._lock:
            entry = self._forms.get(form_id)
            if entry is not None:
                self._forms[form_id] = (entry[0], self._clock())
                self._forms.move_to_end(form_id)
        if entry is None:
            raise HTTPException(status_code=404, detail=f"Unknown form session '{form_id}'")
        return entry[0]

    def discard(self, form_id: str) -> bool:
        with self._lock:
            return self._forms.pop(form_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._forms)


# -----------------------------
# Request bodies
# -----------------------------
class NewSession(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    updated_by: Optional[str] = Field(None, alias="updatedBy")
    source: str = "whatsapp"


class MessageIn(BaseModel):
    message: str


class FieldsIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_name: Optional[str] = Field(None, alias="clientName")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    query: Optional[str] = None
    source: Optional[str] = None
    updated_by: Optional[str] = Field(None, alias="updatedBy")


class ReplyIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reply_message: str = Field(alias="replyMessage")


# -----------------------------
# Helpers
# -----------------------------
def _store(request: Request) -> FormStore:
    return request.app.state.forms


def _status_for(err: TriageError) -> int:
    if isinstance(err, ValidationError):
        return 400
    if isinstance(err, ConfigurationError):
        return 503
    if isinstance(err, UpstreamError):
        return 502
    return 500


def _error_response(form: InteractiveForm, err: TriageError) -> JSONResponse:
    snap = form.snapshot()
    issue = snap.get("issue")
    message = issue["message"] if issue else str(err)
    return JSONResponse(
        {"error": message, "details": str(err), "form": snap},
        status_code=_status_for(err),
    )


async def _run_step(form: InteractiveForm, step) -> Any:
    """Run a blocking form step off the event loop; map triage errors to JSON responses."""
    try:
        await asyncio.to_thread(step)
    except TriageError as e:
        return _error_response(form, e)
    return {"form": form.snapshot()}


# -----------------------------
# Routes
# -----------------------------
@router.get("/", response_class=HTMLResponse)
async def form_page():
    return HTMLResponse(FORM_PAGE)


@router.post("/form/sessions")
async def create_session(request: Request, payload: Optional[NewSession] = None):
    payload = payload or NewSession()
    services = request.app.state.services
    try:
        form = InteractiveForm(
            extractor=services.extractor,
            drafter=services.drafter,
            ledger=services.ledger,
            operator=payload.updated_by if payload.updated_by is not None else settings().FORM_DEFAULT_OPERATOR,
            source=payload.source,
            message=payload.message,
        )
    except ValueError:
        return JSONResponse({"error": f"Unknown source '{payload.source}'"}, status_code=400)
    form_id = _store(request).create(form)
    logger.info("🆕 Form session %s created", form_id)
    return {"id": form_id, "form": form.snapshot()}


@router.get("/form/sessions/{form_id}")
async def get_session(form_id: str, request: Request):
    return {"id": form_id, "form": _store(request).get(form_id).snapshot()}


@router.delete("/form/sessions/{form_id}")
async def delete_session(form_id: str, request: Request):
    if not _store(request).discard(form_id):
        raise HTTPException(status_code=404, detail=f"Unknown form session '{form_id}'")
    return {"ok": True}


@router.post("/form/sessions/{form_id}/message")
async def set_message(form_id: str, payload: MessageIn, request: Request):
    form = _store(request).get(form_id)
    form.set_message(payload.message)
    return {"form": form.snapshot()}


@router.post("/form/sessions/{form_id}/fields")
async def edit_fields(form_id: str, payload: FieldsIn, request: Request):
    form = _store(request).get(form_id)
    edits = payload.model_dump(by_alias=True, exclude_none=True)
    try:
        for name in ("clientName", "phoneNumber", "query"):
            if name in edits:
                form.edit_field(name, edits[name])
        if "source" in edits:
            form.set_source(edits["source"])
        if "updatedBy" in edits:
            form.set_operator(edits["updatedBy"])
    except TriageError as e:
        return _error_response(form, e)
    return {"form": form.snapshot()}


@router.post("/form/sessions/{form_id}/reply")
async def set_reply(form_id: str, payload: ReplyIn, request: Request):
    form = _store(request).get(form_id)
    form.set_reply(payload.reply_message)
    return {"form": form.snapshot()}


@router.post("/form/sessions/{form_id}/extract")
async def extract(form_id: str, request: Request):
    form = _store(request).get(form_id)
    return await _run_step(form, form.extract)


@router.post("/form/sessions/{form_id}/draft")
async def draft(form_id: str, request: Request):
    form = _store(request).get(form_id)
    return await _run_step(form, form.draft)


@router.post("/form/sessions/{form_id}/export")
async def export(form_id: str, request: Request):
    form = _store(request).get(form_id)
    return await _run_step(form, form.export)


@router.post("/form/sessions/{form_id}/reset")
async def reset(form_id: str, request: Request):
    form = _store(request).get(form_id)
    form.reset()
    return {"form": form.snapshot()}


# -----------------------------
# Page
# -----------------------------
FORM_PAGE = """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Message Triage</title>
<meta name="viewport" content="width=device-width, initial-scale=1">
<style>
  body { font-family: system-ui, sans-serif; max-width: 1100px; margin: 2rem auto; padding: 0 1rem; color: #1f2933; }
  h1 { text-align: center; margin-bottom: .25rem; }
  p.lead { text-align: center; color: #616e7c; margin-top: 0; }
  .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 2rem; align-items: start; }
  .card { border: 1px solid #d9e2ec; border-radius: 8px; padding: 1rem 1.25rem; margin-bottom: 1.5rem; }
  .card h2 { font-size: 1.1rem; margin-top: 0; }
  label { display: block; font-weight: 600; margin: .75rem 0 .25rem; }
  input, textarea, select { width: 100%; box-sizing: border-box; padding: .5rem; font: inherit; }
  textarea { resize: vertical; }
  button { margin-top: 1rem; padding: .5rem 1rem; font: inherit; cursor: pointer; }
  button:disabled { opacity: .5; cursor: default; }
  .hidden { display: none; }
  .row { display: flex; justify-content: space-between; gap: 1rem; }
  #issue { position: fixed; bottom: 1rem; left: 1rem; background: #cf1124; color: #fff; border-radius: 6px; padding: .75rem 1rem; max-width: 28rem; }
  #toast { position: fixed; bottom: 1rem; right: 1rem; background: #243b53; color: #fff; border-radius: 6px; padding: .75rem 1rem; }
  .muted { color: #9aa5b1; }
</style>
</head>
<body>
<h1>Message Triage</h1>
<p class="lead">Paste a message, extract details, and generate replies with AI.</p>
<div class="grid">
  <div class="card">
    <h2>1. Input Message</h2>
    <p class="muted">Copy and paste the message from WhatsApp, Email, or any other source.</p>
    <textarea id="message" rows="10" placeholder="e.g., Hi, this is John Doe from Acme Corp. My number is 555-123-4567. I'd like to inquire about your pricing for the enterprise plan."></textarea>
    <button id="extract">Process Message</button>
  </div>
  <div>
    <div class="card" id="placeholder"><p class="muted">Your processed data will appear here.</p></div>
    <div class="card hidden" id="details">
      <h2>2. Extracted Details</h2>
      <label for="clientName">Client Name</label><input id="clientName" placeholder="e.g., John Doe">
      <label for="phoneNumber">Phone Number</label><input id="phoneNumber" placeholder="e.g., 555-123-4567">
      <label for="source">Source</label>
      <select id="source">
        <option value="whatsapp">WhatsApp</option><option value="phone">Phone</option>
        <option value="mail">Mail</option><option value="events">Events</option>
        <option value="website">Website</option>
      </select>
      <label for="query">Query</label><textarea id="query" rows="3" placeholder="e.g., Inquiry about enterprise plan pricing"></textarea>
      <button id="draft">Generate Reply</button>
    </div>
    <div class="card hidden" id="replyCard">
      <h2>3. Generated Reply</h2>
      <textarea id="reply" rows="7" placeholder="Generated reply will appear here..."></textarea>
      <label for="updatedBy">Updated By</label><input id="updatedBy" placeholder="Your Name">
      <div class="row">
        <button id="copy">Copy Reply</button>
        <button id="export">Export to Sheets</button>
      </div>
    </div>
  </div>
</div>
<div id="issue" class="hidden"></div>
<div id="toast" class="hidden"></div>
<script>
let formId = null;
let form = null;
const $ = (id) => document.getElementById(id);

async function call(path, method = "POST", body = undefined) {
  const res = await fetch(path, {
    method,
    headers: body ? {"Content-Type": "application/json"} : {},
    body: body ? JSON.stringify(body) : undefined,
  });
  const data = await res.json();
  if (data.form) render(data.form);
  if (!res.ok) {
    showIssue(data.error || "Request failed", data.details);
    return null;
  }
  return data;
}

function toast(text) {
  const el = $("toast");
  el.textContent = text;
  el.classList.remove("hidden");
  setTimeout(() => el.classList.add("hidden"), 3000);
}

function showIssue(message, details) {
  const el = $("issue");
  el.textContent = message;
  el.title = details || "";
  el.classList.remove("hidden");
}

function clearIssue() { $("issue").classList.add("hidden"); }

function setIfIdle(id, value) {
  const el = $(id);
  if (document.activeElement !== el) el.value = value ?? "";
}

function render(f) {
  form = f;
  const busy = ["extracting", "drafting", "exporting"].includes(f.state);
  const hasData = !!f.extracted;
  $("placeholder").classList.toggle("hidden", hasData || f.state === "extracting");
  $("details").classList.toggle("hidden", !hasData);
  $("replyCard").classList.toggle("hidden", !(f.replyMessage || f.state === "drafting"));
  if (hasData) {
    setIfIdle("clientName", f.extracted.clientName);
    setIfIdle("phoneNumber", f.extracted.phoneNumber);
    setIfIdle("query", f.extracted.query);
  }
  setIfIdle("source", f.source);
  setIfIdle("reply", f.replyMessage);
  setIfIdle("updatedBy", f.updatedBy);
  $("extract").disabled = !f.actions.extract;
  $("extract").textContent = f.state === "extracting" ? "Processing..." : "Process Message";
  $("draft").disabled = !f.actions.draft;
  $("draft").textContent = f.state === "drafting" ? "Generating..." : "Generate Reply";
  $("export").disabled = !f.actions.export;
  $("export").textContent = f.state === "exporting" ? "Exporting..." : "Export to Sheets";
  $("copy").disabled = !f.replyMessage || busy;
  if (f.issue) showIssue(f.issue.message, f.issue.details); else clearIssue();
}

async function start() {
  const data = await call("/form/sessions", "POST", {message: ""});
  if (data) formId = data.id;
}

const path = (step) => `/form/sessions/${formId}/${step}`;

$("message").addEventListener("change", (e) => call(path("message"), "POST", {message: e.target.value}));
$("clientName").addEventListener("change", (e) => call(path("fields"), "POST", {clientName: e.target.value}));
$("phoneNumber").addEventListener("change", (e) => call(path("fields"), "POST", {phoneNumber: e.target.value}));
$("query").addEventListener("change", (e) => call(path("fields"), "POST", {query: e.target.value}));
$("source").addEventListener("change", (e) => call(path("fields"), "POST", {source: e.target.value}));
$("updatedBy").addEventListener("input", (e) => {
  $("export").disabled = !(form && form.replyMessage && e.target.value.trim());
});
$("updatedBy").addEventListener("change", (e) => call(path("fields"), "POST", {updatedBy: e.target.value}));
$("reply").addEventListener("change", (e) => call(path("reply"), "POST", {replyMessage: e.target.value}));
$("message").addEventListener("input", (e) => { $("extract").disabled = !e.target.value.trim(); });

$("extract").addEventListener("click", async () => {
  await call(path("message"), "POST", {message: $("message").value});
  render({...form, state: "extracting", actions: {extract: false, draft: false, export: false}});
  if (await call(path("extract"))) toast("Message details extracted successfully.");
});
$("draft").addEventListener("click", async () => {
  render({...form, state: "drafting", actions: {extract: false, draft: false, export: false}});
  if (await call(path("draft"))) toast("A draft reply has been created for you.");
});
$("export").addEventListener("click", async () => {
  await call(path("fields"), "POST", {updatedBy: $("updatedBy").value});
  await call(path("reply"), "POST", {replyMessage: $("reply").value});
  if (await call(path("export"))) toast("Data successfully exported to Google Sheets.");
});
$("copy").addEventListener("click", () => {
  navigator.clipboard.writeText($("reply").value).then(() => toast("Reply has been copied."));
});

window.addEventListener("pagehide", () => {
  if (formId) fetch(`/form/sessions/${formId}`, {method: "DELETE", keepalive: true});
});

start();
</script>
</body>
</html>
"""
