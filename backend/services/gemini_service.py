import json
import asyncio
import logging
from typing import AsyncIterator

from google.generativeai.client import configure as genai_configure
from google.generativeai.generative_models import GenerativeModel
from google.generativeai.types import GenerationConfig
from pydantic import TypeAdapter, ValidationError

import settings
from models.schemas import (
    Source,
    Message,
    QuizConfig,
    QuizQuestion,
    Flashcard,
    FlashcardConfig,
    Checklist,
    MnemonicResponse,
)
from services import relevance_service, chat_service

logger = logging.getLogger(__name__)

# Initialise the Gemini client once at module level
genai_configure(api_key=settings.GEMINI_API_KEY)

# ── Model tier constants ──────────────────────────────────────────────────────
# Lite: cheap & fast, fine for mnemonics and outlines
# Flash: used for chat and for structured quiz / flashcard / checklist output
MODEL_LITE = "gemini-2.5-flash-lite"
MODEL_FLASH = "gemini-2.5-flash"

# Character budgets for source text inlined into prompts
SUBJECT_CONTEXT_LIMIT = 30000
DOCUMENT_CONTEXT_LIMIT = 30000

CHAT_FALLBACK_REPLY = "عذراً، لم أتمكن من إنشاء إجابة."

CHAT_SYSTEM_INSTRUCTION = """أنت مساعد دراسي خبير للطلاب الشبه طبيين (الجزائر).
قواعد:
1. المحتوى العلمي: بالفرنسية الأكاديمية
2. الحوار: بلغة الطالب (عربي/فرنسي)
3. هيكل الرد: مقدمة مختصرة > محتوى علمي مهيكل (## عناوين، **مصطلحات**) > 📚 شرح المصطلحات
4. هويتك: أعدّك **Ziad**. لا تذكر Google أو Gemini.
كن دقيقاً ومختصراً."""


# ── Errors ────────────────────────────────────────────────────────────────────

class GenerationError(Exception):
    """Gemini failed or returned something we could not use."""

    def __init__(self, message: str = "حدث خطأ في الاتصال."):
        super().__init__(message)
        self.message = message


class QuotaExceededError(GenerationError):
    def __init__(self, message: str = "QUOTA_EXCEEDED: تم تجاوز الحد اليومي. حاول لاحقاً."):
        super().__init__(message)


class InvalidApiKeyError(GenerationError):
    def __init__(self, message: str = "API_KEY_INVALID: مفتاح API غير صالح."):
        super().__init__(message)


def classify_error(exc: Exception, fallback: str | None = None) -> GenerationError:
    """
    Maps an exception raised by the Gemini client onto our error taxonomy by
    looking at its status code and message text.
    """
    if isinstance(exc, GenerationError):
        return exc
    code = getattr(exc, "code", None) or getattr(exc, "status_code", None)
    text = str(exc)
    if code == 429 or "RESOURCE_EXHAUSTED" in text or "quota" in text.lower():
        return QuotaExceededError()
    if code == 401 or "API key" in text or "API_KEY_INVALID" in text:
        return InvalidApiKeyError()
    return GenerationError(fallback) if fallback else GenerationError()


# ── Response helpers ──────────────────────────────────────────────────────────

def _response_text(response) -> str:
    # finish_reason MAX_TOKENS or blocked candidates can leave response.text
    # inaccessible, so fall back to the first candidate's parts.
    try:
        return response.text or ""
    except ValueError:
        try:
            return response.candidates[0].content.parts[0].text or ""
        except Exception:
            return ""


def strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```markdown"):
        text = text[11:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def parse_json_response(text: str, adapter: TypeAdapter, error_message: str):
    """Parses and validates a JSON reply; any failure becomes a GenerationError."""
    if not text or not text.strip():
        raise GenerationError(error_message)
    try:
        return adapter.validate_python(json.loads(strip_fences(text)))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error("Malformed Gemini JSON (%s): %s", error_message, e)
        raise GenerationError(error_message) from e


async def _generate(model: GenerativeModel, contents, error_message: str) -> str:
    try:
        response = await asyncio.to_thread(lambda: model.generate_content(contents))
    except Exception as e:
        logger.error("Gemini API error: %s", e)
        raise classify_error(e, error_message) from e
    return _response_text(response)


def _subject_context(subject: str, sources: list[Source]) -> str:
    subject_lower = subject.lower()
    matching = [
        s.content for s in sources
        if s.content and (subject_lower in s.name.lower() or subject_lower in s.content.lower())
    ]
    if matching:
        return "\n\n".join(matching)
    return f"Sujet général: {subject}. (Aucun fichier spécifique trouvé, utilisez vos connaissances générales)."


def _source_contents(config, sources: list[Source], file: Source | None) -> tuple[str, list]:
    """Prompt context and inline parts for subject- or file-based generation."""
    parts: list = []
    context = ""
    if config.source_type == "subject" and config.subject:
        context = _subject_context(config.subject, sources)
    elif config.source_type == "file" and file is not None:
        if file.data:
            parts.append({"mime_type": file.type, "data": file.data})
        elif file.content:
            context = file.content
    return context[:SUBJECT_CONTEXT_LIMIT], parts


# ── Chat ──────────────────────────────────────────────────────────────────────

def _history_contents(history: list[Message]) -> list[dict]:
    return [{"role": m.role, "parts": [m.content]} for m in chat_service.recent_history(history)]


async def stream_chat(
    prompt: str,
    sources: list[Source],
    history: list[Message] | None = None,
) -> AsyncIterator[str]:
    """
    Asynchronous generator streaming the assistant's reply.
    Only the sources picked by the relevance selector are attached; course
    text is truncated per source to keep the request small.
    """
    relevant = relevance_service.select_relevant_sources(prompt, sources)
    file_parts, context_text = relevance_service.build_context(relevant)
    logger.info("Chat: %d/%d sources attached", len(relevant), len(sources))

    full_prompt = f"السياق:\n{context_text}\n\nالسؤال: {prompt}" if context_text else prompt

    model = GenerativeModel(
        model_name=MODEL_FLASH,
        system_instruction=CHAT_SYSTEM_INSTRUCTION,
        generation_config=GenerationConfig(temperature=0.3, top_p=0.85, max_output_tokens=2048),
    )
    contents = _history_contents(history or []) + [
        {"role": "user", "parts": [*file_parts, full_prompt]}
    ]

    try:
        response = await model.generate_content_async(contents, stream=True)
        async for chunk in response:
            try:
                text = chunk.text
                if text:
                    yield text
            except ValueError:
                # Final chunk carries finish_reason but no text parts
                pass
    except Exception as e:
        logger.error("Gemini API streaming error: %s", e)
        raise classify_error(e) from e


async def generate_chat_response(
    prompt: str,
    sources: list[Source],
    history: list[Message] | None = None,
) -> str:
    chunks = [chunk async for chunk in stream_chat(prompt, sources, history)]
    return "".join(chunks) or CHAT_FALLBACK_REPLY


# ── Quiz ──────────────────────────────────────────────────────────────────────

QUIZ_ERROR = "Échec de la génération du quiz. / فشل إنشاء الاختبار."
_quiz_adapter = TypeAdapter(list[dict])


def normalize_questions(raw: list[dict]) -> list[QuizQuestion]:
    """Renumbers questions 1..n and coerces a lone 'correct_answer' into a list."""
    questions = []
    for index, q in enumerate(raw):
        correct = q.get("correct_answers")
        if not isinstance(correct, list):
            correct = [int(q.get("correct_answer") or 0)]
        questions.append(QuizQuestion(
            id=index + 1,
            question=q.get("question", ""),
            options=q.get("options") or [],
            correct_answers=correct,
            explanation=q.get("explanation") or "",
        ))
    return questions


async def generate_quiz(config: QuizConfig, sources: list[Source], file: Source | None = None) -> list[QuizQuestion]:
    """
    Generates `question_count` four-option MCQs. Single quizzes carry one
    correct index per question; multiple quizzes are all-or-nothing and may
    carry several.
    """
    context, parts = _source_contents(config, sources, file)
    is_multiple = config.quiz_type == "multiple"

    system_instruction = (
        "Rôle: Générateur de QCM Expert pour étudiants paramédicaux.\n"
        f"Tâche: Générer {config.question_count} questions QCM de difficulté '{config.difficulty}'.\n"
        "Type de Quiz: "
        + ("CHOIX MULTIPLES (Plusieurs réponses correctes possibles, 'Tout ou Rien')" if is_multiple
           else "CHOIX UNIQUE (Une seule bonne réponse)")
        + ".\nLangue: Français (Scientifique).\n\n"
        "FORMAT DE SORTIE (STRICT JSON): un tableau JSON, chaque objet avec exactement les clés\n"
        "question (string), options (4 strings), correct_answers (tableau d'index 0-3), explanation (string).\n\n"
        "RÈGLES:\n"
        "1. Les questions doivent être pertinentes par rapport au contenu fourni.\n"
        "2. 4 choix par question.\n"
        + ("3. Fournir 1 ou plusieurs bonnes réponses par question.\n" if is_multiple
           else "3. Une SEULE bonne réponse par question.\n")
        + "4. Pas de texte avant ou après le JSON."
    )
    prompt = f"Génère le quiz maintenant.\nContexte:\n{context}"

    model = GenerativeModel(
        MODEL_FLASH,
        system_instruction=system_instruction,
        generation_config=GenerationConfig(temperature=0.3, response_mime_type="application/json"),
    )
    text = await _generate(model, [prompt, *parts], QUIZ_ERROR)
    raw = parse_json_response(text, _quiz_adapter, QUIZ_ERROR)
    try:
        questions = normalize_questions(raw)
    except (ValidationError, TypeError, ValueError) as e:
        logger.error("Quiz questions failed validation: %s", e)
        raise GenerationError(QUIZ_ERROR) from e
    if not questions:
        raise GenerationError(QUIZ_ERROR)
    return questions


# ── Flashcards ────────────────────────────────────────────────────────────────

FLASHCARD_ERROR = "Échec de la génération des flashcards. / حدث خطأ أثناء إنشاء البطاقات"
_flashcard_adapter = TypeAdapter(list[dict])


async def generate_flashcards(config: FlashcardConfig, sources: list[Source], file: Source | None = None) -> list[Flashcard]:
    context, parts = _source_contents(config, sources, file)
    customization = f"\nInstructions de l'étudiant: {config.customization}" if config.customization else ""

    system_instruction = (
        "Rôle: Créateur expert de flashcards pour étudiants paramédicaux.\n"
        f"Tâche: Créer {config.count} flashcards de révision active.\n"
        "Langue: Français (Scientifique).\n"
        "FORMAT DE SORTIE (STRICT JSON): un tableau JSON d'objets avec les clés\n"
        "front (question courte, une phrase), back (réponse claire, 1-3 phrases), explanation (optionnel).\n"
        "Pas de texte avant ou après le JSON."
        f"{customization}"
    )
    prompt = f"Génère les flashcards maintenant.\nContexte:\n{context}"

    model = GenerativeModel(
        MODEL_FLASH,
        system_instruction=system_instruction,
        generation_config=GenerationConfig(temperature=0.4, response_mime_type="application/json"),
    )
    text = await _generate(model, [prompt, *parts], FLASHCARD_ERROR)
    raw = parse_json_response(text, _flashcard_adapter, FLASHCARD_ERROR)
    try:
        cards = [
            Flashcard(id=str(i + 1), front=c["front"], back=c["back"], explanation=c.get("explanation"))
            for i, c in enumerate(raw)
        ]
    except (KeyError, ValidationError) as e:
        logger.error("Flashcards failed validation: %s", e)
        raise GenerationError(FLASHCARD_ERROR) from e
    if not cards:
        raise GenerationError(FLASHCARD_ERROR)
    return cards


# ── Checklist ─────────────────────────────────────────────────────────────────

CHECKLIST_ERROR = "Échec de la génération de la checklist. / حدث خطأ أثناء التوليد"
_checklist_adapter = TypeAdapter(Checklist)


async def generate_checklist(content: str, title: str) -> Checklist:
    """
    Turns a course into a two-level revision checklist. Items come back
    uncompleted; ids are reassigned by the caller.
    """
    system_instruction = (
        "Rôle: Expert pédagogique pour étudiants paramédicaux.\n"
        "Tâche: Transformer le cours en une checklist de révision structurée (points essentiels à maîtriser).\n"
        "FORMAT DE SORTIE (STRICT JSON): un objet avec les clés\n"
        "  title (string), summary (string),\n"
        "  items (tableau d'objets {id, title, description, children: [mêmes objets, sans enfants]}),\n"
        "  estimated_time (string), tips (tableau de strings).\n"
        "5 à 10 éléments principaux, 0 à 5 sous-éléments chacun. Langue: Français.\n"
        "Pas de texte avant ou après le JSON."
    )
    prompt = f"Titre du cours: {title}\n\nCours:\n{content[:DOCUMENT_CONTEXT_LIMIT]}"

    model = GenerativeModel(
        MODEL_FLASH,
        system_instruction=system_instruction,
        generation_config=GenerationConfig(temperature=0.3, response_mime_type="application/json"),
    )
    text = await _generate(model, prompt, CHECKLIST_ERROR)
    return parse_json_response(text, _checklist_adapter, CHECKLIST_ERROR)


# ── Mnemonics ─────────────────────────────────────────────────────────────────

MNEMONIC_ERROR = "Échec de la génération de la mnémonique."
_mnemonic_adapter = TypeAdapter(MnemonicResponse)


async def generate_mnemonic(topic: str, language: str, context: str | None = None) -> MnemonicResponse:
    target = "ARABE (Lien vers termes Français)" if language == "ar" else "FRANÇAIS"
    phrase_language = "Arabe" if language == "ar" else "Français"
    system_instruction = (
        "Rôle: Expert en Mnémonique Médicale et Pédagogie.\n"
        "Objectif: Créer une phrase facile à retenir pour mémoriser une liste ou un concept médical difficile "
        "(surtout les termes anatomiques/médicaux en FRANÇAIS).\n\n"
        "RÈGLES CRÉATIVES:\n"
        "1. La phrase doit être cohérente, amusante ou bizarre.\n"
        "2. Le programme d'études est en FRANÇAIS.\n"
        "3. En arabe, la mnémonique relie le concept arabe au terme technique français.\n\n"
        f"Langue demandée pour la mnémonique: {target}.\n\n"
        "FORMAT DE SORTIE (STRICT JSON):\n"
        f'{{"mnemonic": "phrase en {phrase_language}", '
        '"breakdown": [{"char": "S", "meaning": "Scaphoïde"}], '
        '"explanation": "explication en Français", "fun_fact": "Le saviez-vous ? en Français"}'
    )
    prompt = f'Sujet à mémoriser: "{topic}"\nContexte supplémentaire: "{context or ""}"\n\nGénère une mnémonique maintenant.'

    model = GenerativeModel(
        MODEL_LITE,
        system_instruction=system_instruction,
        generation_config=GenerationConfig(temperature=0.8, response_mime_type="application/json"),
    )
    text = await _generate(model, prompt, MNEMONIC_ERROR)
    return parse_json_response(text, _mnemonic_adapter, MNEMONIC_ERROR)


# ── Mind maps ─────────────────────────────────────────────────────────────────

MIND_MAP_ERROR = "Échec de la génération de la carte mentale. / فشل إنشاء الخريطة الذهنية"


async def generate_mind_map(content: str, topic: str | None = None) -> str:
    """Returns a markdown outline ('#' title, '##'/'###' branches, '-' leaves)."""
    system_instruction = (
        "Rôle: Expert en cartes mentales pour étudiants paramédicaux.\n"
        "Produire UNIQUEMENT un plan Markdown:\n"
        "- une seule ligne '# ' pour le sujet central,\n"
        "- des '## ' pour les branches principales et '### ' pour les sous-branches,\n"
        "- des puces '- ' courtes (quelques mots) pour les détails.\n"
        "Langue: Français. Pas d'introduction ni de conclusion."
    )
    prompt = f"Sujet: {topic or 'Cours'}\n\nContenu:\n{content[:DOCUMENT_CONTEXT_LIMIT]}"

    model = GenerativeModel(
        MODEL_LITE,
        system_instruction=system_instruction,
        generation_config=GenerationConfig(temperature=0.3),
    )
    text = await _generate(model, prompt, MIND_MAP_ERROR)
    markdown = strip_fences(text)
    if not markdown:
        raise GenerationError(MIND_MAP_ERROR)
    return markdown
