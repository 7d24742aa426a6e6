import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

from chat_hook_plugins.app_config import load_plugins_config
from chat_hook_plugins.logging_config import setup_logging
from chat_hook_plugins.repair import reconcile
from chat_hook_plugins.transcript import TranscriptError, check_linkage, extract_messages, replace_messages


def _read_payload(path: str):
    if path == "-":
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _transcript_or_exit(payload) -> list[dict]:
    messages = extract_messages(payload)
    if messages is None:
        logger.error("Input is neither a list of messages nor an object with a 'messages' list")
        sys.exit(2)
    return messages


def cmd_repair(args: argparse.Namespace) -> int:
    payload = _read_payload(args.input)
    result = reconcile(_transcript_or_exit(payload))
    repaired = replace_messages(payload, result.messages)

    text = json.dumps(repaired, indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)

    report = result.report
    logger.info(
        f"Repair: removed {report.orphaned_results_removed} orphaned result(s), "
        f"added {report.orphaned_calls_fixed} placeholder result(s)"
    )
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    report = check_linkage(_transcript_or_exit(_read_payload(args.input)))
    if report.is_valid:
        print("ok: every tool call has exactly one result")
        return 0
    for result_id in report.orphaned_result_ids:
        print(f"orphaned result: {result_id}")
    for call_id in report.orphaned_call_ids:
        print(f"unanswered call: {call_id}")
    for call_id in report.duplicate_result_ids:
        print(f"duplicate result: {call_id}")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chat-hook-plugins",
        description="Check and repair tool call/result linkage in chat transcripts.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    repair = sub.add_parser("repair", help="write a repaired copy of a transcript")
    repair.add_argument("input", help="JSON file with a message list or a request object ('-' for stdin)")
    repair.add_argument("-o", "--output", help="write the result here instead of stdout")
    repair.set_defaults(func=cmd_repair)

    check = sub.add_parser("check", help="report linkage problems; exit status 1 if any")
    check.add_argument("input", help="JSON file with a message list or a request object ('-' for stdin)")
    check.set_defaults(func=cmd_check)

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    config = load_plugins_config()
    setup_logging(level=config.log_level, consumers=config.log_consumers)

    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except (OSError, json.JSONDecodeError, TranscriptError) as ex:
        logger.error(f"{args.command} failed: {ex}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
