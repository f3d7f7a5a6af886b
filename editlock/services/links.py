import urllib.parse

from ..models import Document

ACTION_PARAM = "bpd_action"
NONCE_PARAM = "_nonce"
CANCEL_EDIT_LOCK = "cancel_edit_lock"
CANCEL_EDIT = "cancel_edit"


def doc_permalink(base_url: str, document: Document) -> str:
    return f"{base_url.rstrip('/')}/docs/{document.slug}/"


def add_query_arg(url: str, **params) -> str:
    """Merge params into the query string of url, replacing existing keys"""
    parsed = urllib.parse.urlparse(url)
    query = dict(urllib.parse.parse_qsl(parsed.query, keep_blank_values=True))
    query.update({key: str(value) for key, value in params.items()})
    return urllib.parse.urlunparse(parsed._replace(query=urllib.parse.urlencode(query)))


def force_cancel_link(base_url: str, document: Document, nonce: str) -> str:
    """Link that clears the lock whoever holds it; carries a CSRF token"""
    return add_query_arg(
        doc_permalink(base_url, document),
        **{ACTION_PARAM: CANCEL_EDIT_LOCK, NONCE_PARAM: nonce}
    )


def cancel_edit_link(base_url: str, document: Document) -> str:
    """Link that takes the current actor out of edit mode, releasing its own lock"""
    return add_query_arg(doc_permalink(base_url, document), **{ACTION_PARAM: CANCEL_EDIT})
