from __future__ import annotations
import sys, requests

def main():
    # assumes API is running at localhost:8000 and seed_demo_data.py has been run
    base = sys.argv[1] if len(sys.argv) > 1 else "http://127.0.0.1:8000"
    student = {"X-User-Id": "demo_student"}
    admin = {"X-User-Id": "demo_admin"}

    r = requests.get(f"{base}/health")
    assert r.status_code == 200 and r.json()["ok"], r.text

    url = f"{base}/api/chatbot/message"
    r = requests.post(url, json={"message": "Hello"}, headers=student)
    assert r.status_code == 200, r.text
    assert r.json()["data"]["text"].startswith("Good "), r.text

    r = requests.post(url, json={"message": "I need help with my scholarship"}, headers=student)
    js = r.json()["data"]
    assert js["action"] == "ticket_offer", js
    r = requests.post(url, json={"message": "yes", "conversationContext": js["conversationContext"]}, headers=student)
    js = r.json()["data"]
    assert js["action"] == "ticket_created", js
    number = js["ticket"]["ticketNumber"]

    r = requests.post(url, json={"message": f"ticket status {number}"}, headers=student)
    js = r.json()["data"]
    assert js["action"] == "ticket_status" and js["tickets"][0]["ticketNumber"] == number, js

    r = requests.get(f"{base}/api/admin/statistics", headers=student)
    assert r.status_code == 403, r.text
    r = requests.get(f"{base}/api/admin/statistics", headers=admin)
    assert r.status_code == 200 and r.json()["data"]["statistics"]["total"] >= 1, r.text
    print("Self-check OK")

if __name__ == "__main__":
    main()
