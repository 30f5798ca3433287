"""Supabase client factory. Client is cached via Streamlit."""
import logging
import os
from pathlib import Path

import streamlit as st
from dotenv import load_dotenv
from supabase import create_client, Client

load_dotenv()

logger = logging.getLogger(__name__)


def _env_client() -> Client:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    return create_client(url, key)


@st.cache_resource
def get_supabase() -> Client:
    return _env_client()


def get_supabase_uncached() -> Client:
    """For CLI/scripts (no Streamlit context)."""
    return _env_client()


def local_progress_dir() -> Path:
    """Directory for anonymous (device-local) progress. LOCAL_PROGRESS_DIR overrides ~/.emgurus."""
    raw = os.environ.get("LOCAL_PROGRESS_DIR")
    path = Path(raw).expanduser() if raw else Path.home() / ".emgurus"
    path.mkdir(parents=True, exist_ok=True)
    return path


def upsert_rows_bulk(client: Client, table: str, rows: list[dict], on_conflict: str = "id", chunk_size: int = 200):
    """Bulk upsert. Dedupes by id so no chunk has duplicates (avoids Postgres ON CONFLICT error)."""
    n_before = len(rows)
    by_id = {r["id"]: r for r in rows}
    rows = list(by_id.values())
    if len(rows) < n_before:
        logger.info("Deduped %s by id: %d -> %d", table, n_before, len(rows))
    n_chunks = (len(rows) + chunk_size - 1) // chunk_size
    for i in range(0, len(rows), chunk_size):
        chunk = rows[i : i + chunk_size]
        chunk_num = i // chunk_size + 1
        logger.info("Upserting chunk %d/%d (%d rows)", chunk_num, n_chunks, len(chunk))
        client.table(table).upsert(chunk, on_conflict=on_conflict).execute()
