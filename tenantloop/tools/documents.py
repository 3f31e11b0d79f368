"""Document storage, lightweight parsing and emailed summaries."""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Optional

from pydantic import Field

from ..errors import ToolExecutionError
from .calendar_events import UUID_PATTERN
from .decorator import tool
from .models import ToolContext

PREVIEW_CHARS = 200
INLINE_CONTENT_CHARS = 500


async def _load_document(context: ToolContext, document_id: str) -> Dict[str, Any]:
    doc = await context.services.documents.get(
        context.tenant_id, context.conversation_id, document_id,
    )
    if doc is None:
        raise ToolExecutionError("Document not found")
    return doc


@tool(category="documents")
async def docs_store(
    doc_type: Annotated[Literal["contract", "invoice", "other"], "Type of document"],
    source_kind: Annotated[Literal["text", "url"], "Whether this is raw text or a URL"],
    source_value: Annotated[str, Field(min_length=1), "The text content or URL"],
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Store a document (text or URL) for later parsing and retrieval."""
    doc = await context.services.documents.store(
        context.tenant_id, context.conversation_id, doc_type, source_kind, source_value,
    )
    return {"document_id": str(doc["id"]), "message": f"{doc_type} document stored"}


@tool(category="documents")
async def docs_parse(
    document_id: Annotated[str, Field(pattern=UUID_PATTERN), "ID of the document to parse"],
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Extract a summary and basic fields from a stored document."""
    doc = await _load_document(context, document_id)
    content = doc["source_value"]
    preview = content[:PREVIEW_CHARS] + ("..." if len(content) > PREVIEW_CHARS else "")
    parsed = {
        "document_type": doc["doc_type"],
        "summary": f"This is a {doc['doc_type']} document",
        "extracted_at": datetime.now(timezone.utc).isoformat(),
        "content_preview": preview,
        "fields": {
            "content_length": len(content),
            "source_type": doc["source_kind"],
        },
    }
    await context.services.documents.set_parsed(context.tenant_id, document_id, parsed)
    return {"document_id": document_id, "parsed": parsed}


def _summary_body(doc: Dict[str, Any]) -> str:
    body = f"Document Summary\n\nType: {doc['doc_type']}\nSource: {doc['source_kind']}\n\n"
    parsed = doc.get("parsed")
    if isinstance(parsed, dict):
        fields = parsed.get("fields") or {}
        body += "Parsed Information:\n"
        body += f"- Summary: {parsed.get('summary') or 'N/A'}\n"
        body += f"- Content Length: {fields.get('content_length', 'N/A')} characters\n"
        if parsed.get("content_preview"):
            body += f"- Preview: {parsed['content_preview']}\n"
    else:
        body += "Document not yet parsed.\n"

    if doc["source_kind"] == "url":
        body += f"\nOriginal URL: {doc['source_value']}"
    elif len(doc["source_value"]) < INLINE_CONTENT_CHARS:
        body += f"\nContent: {doc['source_value']}"
    return body


@tool(category="documents")
async def docs_email_summary(
    document_id: Annotated[str, Field(pattern=UUID_PATTERN), "ID of the document to summarize"],
    to: Annotated[Optional[str], "Recipient (defaults to the conversation's notification email)"] = None,
    *,
    context: ToolContext,
) -> Dict[str, Any]:
    """Email a summary of a stored document."""
    doc = await _load_document(context, document_id)
    recipient = to
    if not recipient:
        settings = await context.services.notifications.get(
            context.tenant_id, context.conversation_id,
        )
        recipient = settings.get("email") if settings else None
    if not recipient:
        raise ToolExecutionError("No email address provided and no notification settings found")

    subject = f"Document Summary: {doc['doc_type']}"
    body = _summary_body(doc)
    result = await context.services.connector.send_email(recipient, subject, body=body)
    if result.unavailable:
        # Summary goes back to the engine so it can be shared in chat instead
        return {
            "sent": False,
            "skipped": result.message,
            "to": recipient,
            "subject": subject,
            "summary": body,
        }
    if not result.success:
        raise ToolExecutionError(f"Failed to send email: {result.message}")
    return {"sent": True, "to": recipient, "subject": subject}
