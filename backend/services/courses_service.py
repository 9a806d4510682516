import logging
import uuid

from models.schemas import Source
from models.sessions import now_ms
from services.session_store import DocumentStore

logger = logging.getLogger(__name__)

COURSES_COLLECTION = "shared_courses"


def _course(course_id: str, name: str, category: str, content: str) -> Source:
    content = " ".join(content.split())
    return Source(
        id=course_id,
        name=name,
        type="text/plain",
        content=content,
        size=len(content.encode("utf-8")),
        category=category,
    )


# Built-in first-year course notes, always part of the library
INITIAL_COURSES: list[Source] = [
    _course("pre-cellule", "Chapitre 1: La Cellule (Anatomie-Physiologie)", "cyto_physio", """
        Définition: La cellule est une unité fondamentale, structurale et fonctionnelle des organismes vivants.
        Structure: Membrane plasmique (bicouche phospholipidique), Cytoplasme, Cytosquelette, Organites
        (Réticulum endoplasmique, Ribosomes, Appareil de Golgi, Lysosomes, Mitochondries), Noyau (ADN, Nucléole).
        Division cellulaire: Mitose (cellules somatiques, 2n -> 2n) et Méiose (cellules sexuelles, 2n -> n).
        Matériel Génétique: ADN (double hélice, A-T G-C), ARN (simple brin, A-U G-C), Chromosomes (23 paires).
    """),
    _course("pre-embryologie", "Notions d'Embryologie", "embryologie", """
        Définitions: Zygote (œuf fécondé), Embryon (jusqu'à 8 semaines), Fœtus (après 8 semaines).
        1ère semaine: Fécondation, Segmentation (Morula -> Blastocyste), Migration vers l'utérus.
        2ème semaine: Implantation, disque didermique. 3ème semaine: Gastrulation (Ectoblaste, Mésoblaste,
        Endoblaste). 4ème semaine: Neurulation. Organogenèse: de la 5ème à la 8ème semaine.
    """),
    _course("pre-genetique", "Le Conseil Génétique", "genetique", """
        Définition: Processus de communication sur les risques de maladies génétiques.
        Indications: Maladie héréditaire, malformations, âge maternel avancé, consanguinité.
        Transmission: Autosomique Dominante (50% de risque), Autosomique Récessive (25% de risque).
    """),
    _course("pre-tissus", "Les Tissus (Histologie)", "tissus", """
        4 grands types de tissus: Épithéliaux (revêtement ou glandulaire, avasculaire), Conjonctifs
        (matrice extracellulaire: os, cartilage, sang, tissu adipeux), Musculaires (strié squelettique,
        cardiaque, lisse), Nerveux (neurones et cellules gliales).
    """),
    _course("pre-cardio", "Le Système Cardio-vasculaire", "cardio", """
        Le coeur: organe musculaire creux, 4 cavités (2 oreillettes, 2 ventricules), valves auriculo-ventriculaires
        et sigmoïdes. Circulation pulmonaire et systémique. Artères, veines, capillaires.
        Révolution cardiaque: systole et diastole. Tension artérielle normale 12/8.
    """),
]


def _from_doc(data: dict) -> Source:
    return Source(
        id=data.get("id", ""),
        name=data.get("name", ""),
        type=data.get("type") or "text/plain",
        content=data.get("content") or "",
        size=data.get("size") or 0,
        category=data.get("category") or "other",
    )


async def load_courses(documents: DocumentStore) -> list[Source]:
    """Built-in courses followed by shared ones, without duplicate ids."""
    try:
        docs = await documents.get_all(COURSES_COLLECTION)
    except Exception as e:
        logger.error("Error loading courses: %s", e)
        docs = []
    docs.sort(key=lambda d: d.get("created_at") or 0, reverse=True)

    known = {c.id for c in INITIAL_COURSES}
    shared = [_from_doc(d) for d in docs if d.get("id") and d.get("id") not in known]
    return [*INITIAL_COURSES, *shared]


async def find_course(documents: DocumentStore, course_id: str) -> Source | None:
    for course in await load_courses(documents):
        if course.id == course_id:
            return course
    return None


async def save_course(documents: DocumentStore, name: str, content: str, category: str | None = None) -> Source:
    course = Source(
        id=f"course-{uuid.uuid4().hex[:12]}",
        name=name,
        type="text/plain",
        content=content,
        size=len(content.encode("utf-8")),
        category=category or "other",
    )
    # Unlike session writes, library edits are confirmed: errors propagate.
    await documents.upsert(COURSES_COLLECTION, course.id, {**course.model_dump(exclude_none=True), "created_at": now_ms()})
    logger.info("Course saved: %s", course.name)
    return course


async def delete_course(documents: DocumentStore, course_id: str) -> None:
    await documents.delete(COURSES_COLLECTION, course_id)
    logger.info("Course deleted: %s", course_id)
