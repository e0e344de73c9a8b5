#!/usr/bin/env python3
import asyncio, argparse
from typing import Any, Dict, List, Optional

from client.relay import CredentialsRejected, RelayClient
from client.sessions import DeviceSession, WebSession


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Talk to the relay as the device or as the web viewer")
    ap.add_argument("--url", default=None, help="relay base URL (default: RELAY_URL)")
    sub = ap.add_subparsers(dest="role", required=True)

    dev = sub.add_parser("device", help="register and poll as the device")
    dev.add_argument("--device-id", default=None)
    dev.add_argument("--name", default=None)
    dev.add_argument("--say", default=None, help="send one message after registering")
    dev.add_argument("--polls", type=int, default=1, help="poll cycles before exiting (0 = forever)")

    web = sub.add_parser("web", help="pair with a thread and poll as the web viewer")
    web.add_argument("thread_id")
    web.add_argument("pair_code")
    web.add_argument("--say", default=None)
    web.add_argument("--polls", type=int, default=1)
    return ap


def _fmt(m: Dict[str, Any]) -> str:
    return f"#{m['msg_id']:<4} {m['from']:>6}: {m['text']}"


async def _poll(session, polls: int, interval_s: float) -> List[Dict[str, Any]]:
    seen: List[Dict[str, Any]] = []
    n = 0
    while polls == 0 or n < polls:
        for m in await session.sync():
            print(_fmt(m))
            seen.append(m)
        n += 1
        if polls == 0 or n < polls:
            await asyncio.sleep(interval_s)
    return seen


async def run(args: argparse.Namespace, client: Optional[RelayClient] = None) -> int:
    client = client or RelayClient(args.url)
    try:
        if args.role == "device":
            session = DeviceSession(client)
            reg = await session.register(args.device_id, args.name)
            print(f"device_id={reg['device_id']} thread_id={reg['thread_id']} pair_code={reg['pair_code']}")
            if args.say:
                res = await session.say(args.say)
                print(f"sent #{res['msg_id']}")
            await _poll(session, args.polls, session.poll_interval_ms / 1000)
        else:
            session = WebSession(client, args.thread_id, args.pair_code)
            if args.say:
                res = await session.say(args.say)
                if res:
                    print(f"sent #{res['msg_id']}")
            await _poll(session, args.polls, 2.0)
    except CredentialsRejected:
        print("Pairing rejected: check thread_id and pair_code (the device may have re-registered).")
        return 2
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
