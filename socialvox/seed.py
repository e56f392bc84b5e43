import logging
from datetime import datetime, timezone

from .schemas import (
    Question,
    Survey,
    SurveyCollections,
    User,
    UserCollections,
    UserRole,
)

logger = logging.getLogger(__name__)


def _at(text: str) -> datetime:
    return datetime.fromisoformat(text).replace(tzinfo=timezone.utc)


def demo_users() -> UserCollections:
    return UserCollections(
        users=[
            User(
                username="admin",
                name="Admin Principal",
                email="admin@encuestasva.com",
                role=UserRole.ADMIN_MANAGER,
                created_at=_at("2023-01-10T08:00:00"),
                password="admin123",
            ),
            User(
                username="surveyor",
                name="Juan Pérez",
                email="juan@encuestasva.com",
                role=UserRole.SURVEYOR,
                created_at=_at("2023-01-15T10:30:00"),
                password="surveyor123",
            ),
            User(
                username="manager",
                name="María Gómez",
                email="maria@encuestasva.com",
                role=UserRole.ADMIN,
                created_at=_at("2023-02-05T14:45:00"),
                password="manager123",
            ),
        ]
    )


def demo_surveys(users: UserCollections) -> SurveyCollections:
    by_username = {u.username: u.id for u in users.users}
    admin_id = by_username.get("admin", "")
    assigned = [by_username["surveyor"]] if "surveyor" in by_username else []

    satisfaction = Survey(
        title="Encuesta de Satisfacción del Cliente",
        description="Evaluación mensual sobre la calidad de nuestros productos y servicios",
        questions=[
            Question(
                text="¿Cómo calificaría la calidad de nuestro servicio?",
                options=["Excelente", "Bueno", "Regular", "Malo", "Muy malo"],
            ),
            Question(
                text="¿Qué tan probable es que recomiende nuestros productos a otras personas?",
                options=["Muy probable", "Probable", "Neutral", "Poco probable", "Nada probable"],
            ),
            Question(
                text="¿Qué aspecto de nuestro servicio podríamos mejorar?",
                options=[
                    "Atención al cliente",
                    "Calidad del producto",
                    "Precios",
                    "Tiempos de entrega",
                    "Otro",
                ],
            ),
        ],
        created_at=_at("2023-09-15T10:30:00"),
        created_by=admin_id,
        assigned_to=list(assigned),
    )
    product = Survey(
        title="Evaluación de Nuevo Producto",
        description="Feedback sobre el lanzamiento de nuestro último producto",
        questions=[
            Question(
                text="¿Cómo se enteró de nuestro nuevo producto?",
                options=["Redes sociales", "Correo electrónico", "Recomendación", "Publicidad", "Otro"],
            ),
            Question(
                text="¿Qué características le parecen más interesantes?",
                options=["Diseño", "Funcionalidad", "Precio", "Innovación", "Calidad"],
            ),
        ],
        created_at=_at("2023-10-05T14:45:00"),
        created_by=admin_id,
        assigned_to=list(assigned),
    )
    logger.info("Seeding demo surveys")
    return SurveyCollections(surveys=[satisfaction, product])
