from __future__ import annotations
import argparse, json, requests

def send(url: str, user_id: str, message: str, context, api_key=None):
    payload = {"message": message}
    if context:
        payload["conversationContext"] = context
    headers = {"X-User-Id": user_id}
    if api_key:
        headers["X-API-Key"] = api_key
    r = requests.post(url, json=payload, headers=headers, timeout=60)
    return r.status_code, r.json()

def main():
    ap = argparse.ArgumentParser(description="Chat with the registrar helpdesk from a terminal.")
    ap.add_argument("--url", default="http://localhost:8000/api/chatbot/message")
    ap.add_argument("--user_id", default="demo_student")
    ap.add_argument("--api_key", default=None)
    ap.add_argument("--text", default=None, help="send one message and exit")
    ap.add_argument("--raw", action="store_true", help="print the full JSON response")
    args = ap.parse_args()

    context = None
    while True:
        if args.text is not None:
            message = args.text
        else:
            try:
                message = input("you> ").strip()
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not message:
                continue
            if message in ("/quit", "/exit"):
                break

        status, body = send(args.url, args.user_id, message, context, args.api_key)
        if args.raw or status != 200:
            print(status)
            print(json.dumps(body, ensure_ascii=False, indent=2))
        data = body.get("data") or {}
        if status == 200 and not args.raw:
            print(f"bot> {data.get('text', '')}")
        # an offer is only valid for the very next message
        context = data.get("conversationContext")

        if args.text is not None:
            break

if __name__ == "__main__":
    main()
