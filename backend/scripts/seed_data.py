"""
Seed Data Script - Creates sample applications and facts in MongoDB
Run: python -m scripts.seed_data
"""
from datetime import datetime, timezone

from subsidy_workflow.repositories.mongo_client import get_collection, create_indexes
from subsidy_workflow.repositories.case_repo import CaseRepository
from subsidy_workflow.domain.enums import Role, PhotoCategory, DocumentStatus, ControlVisitStatus
from subsidy_workflow.domain.errors import AlreadyExistsError
from subsidy_workflow.engine.definition import build_registry
from subsidy_workflow.engine.engine import WorkflowEngine
from subsidy_workflow.repositories.facts_repo import FactsRepository
from subsidy_workflow.repositories.notification_repo import NotificationRepository
from subsidy_workflow.repositories.task_repo import TaskRepository
from subsidy_workflow.services.notification_service import OutboxPublisher
from subsidy_workflow.services.task_service import WorkflowTaskCreator

SAMPLE_APPLICATIONS = [
    ("APP-SEED-0001", 1),
    ("APP-SEED-0002", 3),
    ("APP-SEED-0003", 2),
]

SAMPLE_ROLES = {
    "front.office@example.org": ["front_office"],
    "staff@example.org": ["staff"],
    "inspector@example.org": ["control"],
    "director@example.org": ["director"],
    "minister@example.org": ["minister"],
    "admin@example.org": ["admin"],
}


def seed_roles() -> None:
    user_roles = get_collection("user_roles")
    for actor_id, roles in SAMPLE_ROLES.items():
        user_roles.update_one({"actor_id": actor_id}, {"$set": {"roles": roles}}, upsert=True)
    print(f"Seeded roles for {len(SAMPLE_ROLES)} actors")


def seed_complete_dossier(application_id: str) -> None:
    """Documents, control visit, photos and reports that satisfy every guard"""
    now = datetime.now(timezone.utc)
    get_collection("documents").insert_many([
        {
            "application_id": application_id,
            "document_name": name,
            "is_required": True,
            "file_path": f"/documents/{application_id}/{name}.pdf",
            "verification_status": DocumentStatus.VERIFIED.value,
            "created_at": now,
        }
        for name in ("national_id", "income_statement", "property_deed")
    ])
    get_collection("control_visits").insert_one({
        "application_id": application_id,
        "visit_status": ControlVisitStatus.COMPLETED.value,
        "outcome": "Dwelling requires roof and sanitation repairs",
        "created_at": now,
    })
    categories = [c.value for c in PhotoCategory]
    get_collection("control_photos").insert_many([
        {"application_id": application_id, "photo_category": categories[i % len(categories)], "created_at": now}
        for i in range(8)
    ])
    get_collection("technical_reports").insert_one({
        "application_id": application_id,
        "technical_conclusion": "Structural repairs needed",
        "recommendations": "Roof replacement, new sanitation",
        "created_at": now,
    })
    get_collection("social_reports").insert_one({
        "application_id": application_id,
        "social_conclusion": "Household qualifies",
        "recommendations": "Full subsidy",
        "created_at": now,
    })


def main() -> None:
    create_indexes()
    seed_roles()

    engine = WorkflowEngine(
        registry=build_registry(),
        store=CaseRepository(),
        facts_provider=FactsRepository(),
        publisher=OutboxPublisher(NotificationRepository()),
        task_creator=WorkflowTaskCreator(TaskRepository()),
    )

    for application_id, priority in SAMPLE_APPLICATIONS:
        try:
            engine.open_case(application_id, priority=priority, created_by="seed")
        except AlreadyExistsError:
            print(f"{application_id} already exists, skipping")
            continue
        seed_complete_dossier(application_id)
        print(f"Created {application_id} (priority {priority})")

    print("Seed complete. Roles:", ", ".join(r.value for r in Role))


if __name__ == "__main__":
    main()
