from __future__ import annotations
import json, logging

from helpdesk.tickets import get_ticket_store

logging.basicConfig(level=logging.INFO, format="%(message)s")

USERS = [
    {"user_id": "demo_admin", "username": "registrar_admin", "email": "registrar@university.edu",
     "first_name": "Maria", "last_name": "Santos", "role": "admin"},
    {"user_id": "demo_student", "username": "jdelacruz", "email": "jdelacruz@student.university.edu",
     "first_name": "Juan", "last_name": "Dela Cruz", "role": "student"},
    {"user_id": "demo_student2", "username": "areyes", "email": "areyes@student.university.edu",
     "first_name": "Ana", "last_name": "Reyes", "role": "student"},
]

TICKETS = [
    ("demo_student", "Request for Official Transcript of Records",
     "I need 2 copies of my OTR for a job application abroad.", "OTR Request", "High",
     {"numberOfCopies": 2, "purpose": "job application"}),
    ("demo_student", "Add subject CS101 Introduction to Computing",
     "I would like to enroll in CS101 for this semester. Subject code: CS101.", "Subject Enrollment", "Normal",
     {"subjectCode": "CS101", "subjectName": "Introduction to Computing", "semester": "1st"}),
    ("demo_student", "Missing grade in Physics 2",
     "My final grade in Physics 2 is not showing on the portal.", "Grade Inquiry", "Normal", {}),
    ("demo_student2", "Certificate of Enrollment for scholarship",
     "Please issue a certificate of enrollment, I need it for my scholarship renewal.", "Document Request", "Urgent",
     {"purpose": "scholarship renewal", "numberOfCopies": 1}),
    ("demo_student2", "Tuition payment not reflected",
     "I paid my tuition last week but the portal still shows a balance.", "Tuition Payment", "High", {}),
]

def main():
    store = get_ticket_store()
    for u in USERS:
        store.upsert_user(**u)

    created = []
    for user_id, title, description, category, priority, details in TICKETS:
        created.append(store.create_ticket(
            user_id=user_id, title=title, description=description,
            category=category, priority=priority, request_details=details,
        ))

    # Walk a few tickets through the admin workflow
    otr, subject, grade, coe, tuition = created
    store.assign_ticket(otr["id"], "demo_admin")
    store.update_status(otr["id"], "In Review", actor_id="demo_admin", remarks="Documents are being prepared.")
    store.update_status(coe["id"], "Completed", actor_id="demo_admin",
                        remarks="Your certificate is ready for pickup at the Registrar's Office.")
    store.update_status(tuition["id"], "Rejected", actor_id="demo_admin")
    store.set_resolution(tuition["id"], rejection_reason="Please coordinate with the Cashier's Office for payment concerns.")
    store.add_comment(grade["id"], "demo_admin", "Checked with the Physics department, awaiting reply.", is_internal=True)

    print(json.dumps({"users": len(USERS), "tickets": [t["ticketNumber"] for t in created]}, indent=2))
    print("Seeded demo data successfully.")

if __name__ == "__main__":
    main()
