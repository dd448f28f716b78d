"""
Chain ingestion pipeline.

Turns a batch of raw chat records into trigram chain entries. Each record is
tokenized, a width-3 window slides over its words and every window becomes a
``(prefix1, prefix2, suffix)`` triple. The whole batch is written in one
store transaction: a bad record is skipped, a storage fault discards the
batch.
"""

import json
import os
import time

import pandas as pd

from utils.errors import ChainStoreError, TokenizerNotReadyError
from utils.system_monitoring import ResourceMonitor

TEXT_COLUMN_HINTS = ("content", "text", "message", "comment")


def extract_triples(words):
    """
    Slide a width-3 window over ``words``.

    Windows containing an empty or non-string component are dropped.

    Args:
        words (list): Token surface forms

    Returns:
        list: (prefix1, prefix2, suffix) tuples in order
    """
    return [
        (w1, w2, w3)
        for w1, w2, w3 in zip(words, words[1:], words[2:])
        if all(isinstance(w, str) and w for w in (w1, w2, w3))
    ]


class ChainIngestionPipeline:
    """
    Populates a chain store from raw text records.
    """

    def __init__(self, chain_store, tokenizer, logger, preprocessor=None,
                 progress_interval=1000, resource_monitor=None):
        """
        Args:
            chain_store: ChainStoreAdapter receiving the triples
            tokenizer: Tokenizer with ``is_ready()`` and ``tokenize(text)``
            logger (Logger, required): Logger instance
            preprocessor (ChatTextPreprocessor, optional): Cleans each record first
            progress_interval (int): Records between progress reports
            resource_monitor (ResourceMonitor, optional): Created from logger if omitted
        """
        if logger is None:
            raise ValueError("Logger instance must be provided")
        if progress_interval < 1:
            raise ValueError("progress_interval must be a positive integer")

        self.chain_store = chain_store
        self.tokenizer = tokenizer
        self.logger = logger
        self.preprocessor = preprocessor
        self.progress_interval = progress_interval
        self.resource_monitor = resource_monitor or ResourceMonitor(logger=logger)

    def _words_for(self, text):
        """
        Tokenize one record.

        Returns:
            list or None: surface forms, or None if the record must be skipped
        """
        if not text:
            return None

        if not isinstance(text, str):
            self.logger.warning("Skipping record that is not text", extra={
                "metrics": {"record_type": type(text).__name__}
            })
            return None

        if self.preprocessor is not None:
            text = self.preprocessor.preprocess(text)
            if not text:
                return None

        try:
            tokens = self.tokenizer.tokenize(text)
        except Exception as e:
            self.logger.warning("Skipping record that failed to tokenize", extra={
                "metrics": {
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "text_sample": str(text)[:100],
                }
            })
            return None

        words = [token.surface_form for token in tokens]
        if len(words) < 3:
            return None
        return words

    def _report_progress(self, done, total, inserted, progress_callback):
        progress = (done / total) * 100 if total else None
        self.resource_monitor.log_progress(
            f"Ingested {done} records",
            progress_percent=progress,
            operation="chain_ingestion",
            extra_metrics={
                "records_seen": done,
                "records_total": total,
                "triples_inserted": inserted,
            },
        )
        if progress_callback is not None:
            progress_callback(done, total)

    def ingest(self, records, progress_callback=None):
        """
        Ingest a batch of raw records in a single transaction.

        Args:
            records (iterable): Raw text records; empty or None entries are skipped
            progress_callback (callable, optional): Called as ``(done, total)``
                every ``progress_interval`` records and once at the end;
                ``total`` is None when ``records`` has no length

        Returns:
            dict: {"records_processed": int, "triples_inserted": int}

        Raises:
            TokenizerNotReadyError: if the tokenizer has not finished loading
            ChainStoreError: if the store failed; nothing from the batch is kept
        """
        if not self.tokenizer.is_ready():
            self.logger.warning("Ingestion refused - tokenizer not ready")
            raise TokenizerNotReadyError("Tokenizer is not ready yet")

        total = len(records) if hasattr(records, "__len__") else None
        start_time = time.time()
        self.resource_monitor.start("chain_ingestion")

        records_processed = 0
        records_seen = 0

        try:
            with self.chain_store.transaction() as writer:
                for text in records:
                    records_seen += 1

                    words = self._words_for(text)
                    if words is not None:
                        for prefix1, prefix2, suffix in extract_triples(words):
                            writer.upsert_triple(prefix1, prefix2, suffix)
                        records_processed += 1

                    if records_seen % self.progress_interval == 0:
                        self._report_progress(
                            records_seen, total, writer.inserted, progress_callback)

                triples_inserted = writer.inserted

        except ChainStoreError as e:
            self.logger.error("Ingestion batch aborted, no triples kept", extra={
                "metrics": {"error": str(e), "records_seen": records_seen}
            })
            raise
        finally:
            self.resource_monitor.stop()

        if progress_callback is not None:
            progress_callback(records_seen, total)

        result = {
            "records_processed": records_processed,
            "triples_inserted": triples_inserted,
        }
        self.logger.info("Ingestion batch committed", extra={
            "metrics": {
                **result,
                "records_seen": records_seen,
                "duration": time.time() - start_time,
            }
        })
        return result


def _load_csv(path):
    try:
        try:
            df = pd.read_csv(path, encoding="utf-8")
        except UnicodeDecodeError:
            df = pd.read_csv(path, encoding="latin-1")
    except pd.errors.EmptyDataError:
        return []

    text_columns = [
        col for col in df.columns
        if any(hint in str(col).lower() for hint in TEXT_COLUMN_HINTS)
    ]
    column = text_columns[0] if text_columns else df.columns[0]
    return [None if pd.isna(value) else str(value) for value in df[column].tolist()]


def _load_jsonl(path):
    records = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            item = json.loads(line)
            if isinstance(item, dict):
                records.append(item.get("content", item.get("text")))
            else:
                records.append(str(item))
    return records


def _load_txt(path):
    with open(path, "r", encoding="utf-8") as f:
        return [line.rstrip("\n") for line in f]


RECORD_LOADERS = {
    ".txt": _load_txt,
    ".jsonl": _load_jsonl,
    ".csv": _load_csv,
}


def load_records(path, limit=None):
    """
    Read raw chat records from an exported history file.

    Supported formats: ``.txt`` (one record per line), ``.jsonl`` (``content``
    or ``text`` field per line) and ``.csv`` (first column whose name looks
    like message text, otherwise the first column).

    Args:
        path (str): File to read
        limit (int, optional): Keep at most this many records

    Returns:
        list: Raw records, possibly containing None or empty strings
    """
    if limit is not None and limit < 1:
        raise ValueError("limit must be a positive integer")

    if not os.path.exists(path):
        raise FileNotFoundError(f"Record file not found: {path}")

    extension = os.path.splitext(path)[1].lower()
    loader = RECORD_LOADERS.get(extension)
    if loader is None:
        raise ValueError(f"Unsupported record file format: {extension}")

    records = loader(path)
    return records[:limit] if limit is not None else records
