from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict, replace
from pathlib import Path

from .config import TranslatorConfig, load_config
from .llm import build_completion_backend
from .logging_utils import setup_logging
from .structure_check import compare_markup_structure, write_structure_report
from .translator import HTMLTranslator


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="htmltr", description="Structure-preserving HTML translator.")
    sub = p.add_subparsers(dest="cmd", required=True)

    t = sub.add_parser("translate", help="Translate an HTML fragment preserving markup.")
    t.add_argument("--input", "-i", required=True, help="Path to source .html")
    t.add_argument("--output", "-o", required=True, help="Path to output .html")
    t.add_argument("--config", "-c", default=None, help="Path to YAML config (defaults: mock provider).")
    t.add_argument("--lang", "-l", default=None, help="Target language code; overrides config.")
    t.add_argument(
        "--max-chunks",
        type=int,
        choices=range(0, 11),
        metavar="N",
        default=None,
        help="0 for automatic chunking, 1-10 for a fixed chunk count; overrides config.",
    )
    t.add_argument("--title", default=None, help="Original title to patch in H1 / JSON-LD headline.")
    t.add_argument("--description", default=None, help="Original meta description to patch.")
    t.add_argument("--concurrency", type=int, default=None, help="Override granular-mode concurrency.")
    t.add_argument("--usage-json", default=None, help="Write token usage snapshot and issues to this path.")
    t.add_argument("--log", default=None, help="Override log path.")

    v = sub.add_parser("verify", help="Compare tag sequences of a source and a translated HTML file.")
    v.add_argument("--input", "-i", required=True, help="Path to source .html")
    v.add_argument("--output", "-o", required=True, help="Path to translated .html")
    v.add_argument("--report", default=None, help="Optional JSON report path")
    v.add_argument("--max-mismatches", type=int, default=20, help="Max tag mismatches to list in report.")
    return p


def _apply_overrides(cfg: TranslatorConfig, args: argparse.Namespace) -> TranslatorConfig:
    tr = cfg.translation
    if args.lang is not None:
        tr = replace(tr, target_lang=str(args.lang))
    if args.concurrency is not None:
        tr = replace(tr, concurrency=max(1, int(args.concurrency)))
    cfg = replace(cfg, translation=tr)
    if args.log is not None:
        cfg = replace(cfg, log_path=str(args.log))
    return cfg


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.cmd == "translate":
        cfg = load_config(args.config) if args.config else TranslatorConfig()
        cfg = _apply_overrides(cfg, args)
        logger = setup_logging(Path(cfg.log_path) if cfg.log_path else None)
        logger.info(f"Input: {args.input}")
        logger.info(f"Output: {args.output}")
        logger.info(f"Provider: {cfg.llm.provider}; model={cfg.llm.model}; lang={cfg.translation.target_lang}")

        backend = build_completion_backend(
            cfg.llm.provider,
            cfg.llm.model,
            cfg.llm.temperature,
            cfg.llm.timeout_s,
            cfg.llm.max_output_tokens,
            base_url=cfg.llm.base_url,
            api_keys=cfg.llm.api_keys,
        )
        translator = HTMLTranslator(backend, cfg=cfg, max_chunks=args.max_chunks, logger=logger)

        source = Path(args.input).read_text(encoding="utf-8")
        result = translator.translate(source)
        if args.title or args.description:
            result = translator.translate_metadata(result, args.title, args.description)

        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(result, encoding="utf-8")

        usage = translator.get_usage()
        logger.info(
            f"Backend calls: {translator.session.usage.requests}; "
            f"tokens: input={usage['input']}; output={usage['output']}"
        )
        if translator.session.issues:
            logger.warning(f"Issues: {len(translator.session.issues)}")
        if args.usage_json:
            payload = {
                "usage": translator.session.usage.snapshot(),
                "calls": [asdict(r) for r in translator.session.usage.records()],
                "issues": [
                    {"code": i.code, "severity": i.severity.value, "message": i.message, "details": i.details}
                    for i in translator.session.issues
                ],
            }
            usage_path = Path(args.usage_json)
            usage_path.parent.mkdir(parents=True, exist_ok=True)
            usage_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        return 0

    if args.cmd == "verify":
        report = compare_markup_structure(
            Path(args.input).read_text(encoding="utf-8"),
            Path(args.output).read_text(encoding="utf-8"),
            max_mismatches=int(args.max_mismatches),
        )
        print("HTML structure check")
        print("Tags:", report["source_tags"], "->", report["output_tags"])
        print("JSON-LD blocks:", report["structured_blocks"])
        print("Mismatches:", len(report["mismatches"]))
        if args.report:
            write_structure_report(report, Path(args.report))
            print(f"Report written: {args.report}")
        return 0 if report["identical"] else 1

    print(f"Unknown command: {args.cmd}", file=sys.stderr)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
