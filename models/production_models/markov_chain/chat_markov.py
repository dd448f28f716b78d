#!/usr/bin/env python3
"""
Markov Chat command line tool

Ingests exported chat history into the trigram chain store and generates
text from it:

    markov-chat ingest history.jsonl --limit 5000 --preprocess
    markov-chat generate --length 80 --input "what do you think about cats"
    markov-chat stats
    markov-chat reset --yes
"""
import argparse
import json
import logging
import sys

from models.nlps.text_preprocessor import ChatTextPreprocessor
from models.nlps.tokenizers import build_tokenizer
from models.production_models.markov_chain.ingestion import ChainIngestionPipeline, load_records
from models.production_models.markov_chain.markov_chain import TrigramMarkovChain
from utils.config_loader import load_config
from utils.database_adapters.factory import create_chain_store
from utils.errors import MarkovChainError, TokenizerNotReadyError
from utils.loggers.json_logger import get_logger

MIN_LENGTH = 10
MAX_LENGTH = 200


def bounded_length(value):
    """argparse type for --length, limited to the range the chat command allowed."""
    length = int(value)
    if not MIN_LENGTH <= length <= MAX_LENGTH:
        raise argparse.ArgumentTypeError(
            f"length must be between {MIN_LENGTH} and {MAX_LENGTH}")
    return length


def positive_int(value):
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return number


class MarkovChatRunner:
    """
    Wires configuration, logging, the chain store and the tokenizer together
    for one command line invocation.
    """

    def __init__(self, environment="development", config_path=None, log_file=None,
                 tokenizer_timeout=60.0):
        self.environment = environment
        self.config = load_config(environment, config_path=config_path)

        logging_config = self.config["logging"]
        self.logger = get_logger(
            f"markov_chat_{environment}",
            log_file=log_file or logging_config.get("log_file"),
            console_json=logging_config.get("console_json", True),
            console_level=getattr(logging, str(logging_config.get("console_level", "INFO")).upper()),
        )

        self.tokenizer_timeout = tokenizer_timeout
        self.chain_store = create_chain_store(self.config, logger=self.logger)
        if not self.chain_store.is_usable():
            raise MarkovChainError("Chain store is not usable; check the database configuration")

        self.tokenizer = build_tokenizer(self.config, logger=self.logger)

    def _wait_for_tokenizer(self):
        if not self.tokenizer.wait_until_ready(self.tokenizer_timeout):
            raise TokenizerNotReadyError(
                "Tokenizer is not ready yet. Please wait a moment and try again.")

    def build_chain(self):
        generation = self.config["generation"]
        return TrigramMarkovChain(
            chain_store=self.chain_store,
            tokenizer=self.tokenizer,
            logger=self.logger,
            messages=self.config.get("messages"),
            default_max_words=generation.get("default_max_words", 50),
            min_seeded_length=generation.get("min_seeded_length", 10),
        )

    def ingest(self, path, limit=None, preprocess=None):
        """
        Load records from ``path`` and ingest them as one batch.

        Returns:
            dict: The pipeline result
        """
        settings = self.config["ingestion"]
        limit = limit or settings.get("default_limit")
        if preprocess is None:
            preprocess = settings.get("preprocess", False)

        records = load_records(path, limit=limit)
        print(f"Loaded {len(records)} records from {path}. Saving to the chain store...")

        self._wait_for_tokenizer()
        pipeline = ChainIngestionPipeline(
            chain_store=self.chain_store,
            tokenizer=self.tokenizer,
            logger=self.logger,
            preprocessor=ChatTextPreprocessor() if preprocess else None,
            progress_interval=settings.get("progress_interval", 1000),
        )
        return pipeline.ingest(
            records,
            progress_callback=lambda done, total: print(f"  {done}/{total} records processed..."),
        )

    def generate(self, length=None, input_text=None):
        chain = self.build_chain()
        if input_text:
            self._wait_for_tokenizer()
            return chain.generate_from_seed(input_text, length)
        return chain.generate(length)

    def stats(self):
        return self.build_chain().get_statistics()

    def reset(self):
        return self.chain_store.clear_chain()

    def close(self):
        self.chain_store.close_connections()


def build_parser():
    parser = argparse.ArgumentParser(
        prog="markov-chat",
        description="Build a trigram Markov chain from chat history and generate text")
    parser.add_argument("--env", choices=["development", "test", "production"],
                        default="development", help="Environment (default: development)")
    parser.add_argument("--config", help="Path to a YAML config file")
    parser.add_argument("--log-file", help="Write JSON logs to this file as well")
    parser.add_argument("--tokenizer-timeout", type=float, default=60.0,
                        help="Seconds to wait for the tokenizer to load (default: 60)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Ingest a chat history export")
    ingest.add_argument("path", help="History file (.txt, .jsonl or .csv)")
    ingest.add_argument("--limit", type=positive_int,
                        help="Maximum number of records to ingest (default: from config)")
    ingest.add_argument("--preprocess", action="store_true", default=None,
                        help="Strip mentions, custom emoji, code and URLs before tokenizing")

    generate = subparsers.add_parser("generate", help="Generate text from the chain")
    generate.add_argument("--length", type=bounded_length,
                          help=f"Maximum words to generate ({MIN_LENGTH}-{MAX_LENGTH}, default: 50)")
    generate.add_argument("--input", dest="input_text",
                          help="Generate a reply related to this text instead of a random sentence")

    subparsers.add_parser("stats", help="Show chain statistics")

    reset = subparsers.add_parser("reset", help="Delete every chain entry")
    reset.add_argument("--yes", action="store_true", help="Confirm deletion")

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.command == "reset" and not args.yes:
        print("Refusing to clear the chain without --yes", file=sys.stderr)
        return 1

    try:
        runner = MarkovChatRunner(
            environment=args.env,
            config_path=args.config,
            log_file=args.log_file,
            tokenizer_timeout=args.tokenizer_timeout,
        )
    except MarkovChainError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        if args.command == "ingest":
            result = runner.ingest(args.path, limit=args.limit, preprocess=args.preprocess)
            print(f"Done. Processed {result['records_processed']} records and added "
                  f"{result['triples_inserted']} new chain entries.")

        elif args.command == "generate":
            print(runner.generate(length=args.length, input_text=args.input_text))

        elif args.command == "stats":
            stats = runner.stats()
            print(f"Chain entries: {stats['entries']}")
            print(f"Distinct nodes: {stats['nodes']}")
            print(json.dumps(stats["details"], indent=2, ensure_ascii=False, default=str))

        elif args.command == "reset":
            if not runner.reset():
                print("Error: could not clear the chain", file=sys.stderr)
                return 1
            print("Chain cleared.")

    except (MarkovChainError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        runner.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
