import unittest
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from main import create_app
from models.schemas import Checklist, ChecklistItem, Flashcard, MnemonicResponse, QuizQuestion
from rate_limiter import limiter
from services import gemini_service
from services.auth_service import AccessPolicy
from services.gemini_service import QuotaExceededError
from services.session_store import InMemoryDocumentStore

USER = {"X-User-Id": "student-1"}
ADMIN = {**USER, "X-User-Email": "admin@example.dz"}
SUPERVISOR = {**USER, "X-User-Email": "prof@example.dz"}

QUESTIONS = [
    QuizQuestion(id=1, question="Organites ?", options=["Noyau", "Os", "Mitochondrie", "Sang"], correct_answers=[0, 2]),
    QuizQuestion(id=2, question="ADN ?", options=["A-T", "A-U", "G-A", "T-T"], correct_answers=[0]),
]


class RouteTestCase(unittest.TestCase):
    def setUp(self):
        limiter.enabled = False
        self.documents = InMemoryDocumentStore()
        self.app = create_app(
            documents=self.documents,
            access_policy=AccessPolicy.from_emails(["admin@example.dz"], ["prof@example.dz"]),
        )
        self.client = TestClient(self.app)
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        limiter.enabled = True


class TestBasics(RouteTestCase):
    def test_health(self):
        self.assertEqual(self.client.get("/api/health").json(), {"status": "ok"})

    def test_user_header_is_required(self):
        self.assertEqual(self.client.get("/api/quizzes").status_code, 400)


class TestChatRoutes(RouteTestCase):
    def test_a_chat_always_exists(self):
        sessions = self.client.get("/api/chat/sessions", headers=USER).json()
        self.assertEqual(len(sessions), 1)
        self.assertEqual(sessions[0]["messages"], [])

    def test_send_message(self):
        session_id = self.client.post("/api/chat/sessions", headers=USER).json()["id"]
        with patch.object(gemini_service, "generate_chat_response", AsyncMock(return_value="La mitose...")):
            r = self.client.post(
                f"/api/chat/sessions/{session_id}/messages", json={"prompt": "C'est quoi la mitose ?"}, headers=USER
            )
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual([m["role"] for m in body["messages"]], ["user", "model"])
        self.assertEqual(body["title"], "C'est quoi la mitose ?")

    def test_quota_error_is_kept_in_thread(self):
        session_id = self.client.post("/api/chat/sessions", headers=USER).json()["id"]
        with patch.object(gemini_service, "generate_chat_response", AsyncMock(side_effect=QuotaExceededError())):
            r = self.client.post(f"/api/chat/sessions/{session_id}/messages", json={"prompt": "Bonjour"}, headers=USER)
        self.assertEqual(r.status_code, 429)
        messages = self.client.get(f"/api/chat/sessions/{session_id}", headers=USER).json()["messages"]
        self.assertTrue(messages[-1]["is_error"])

    def test_stream_message(self):
        session_id = self.client.post("/api/chat/sessions", headers=USER).json()["id"]

        async def chunks(*args, **kwargs):
            yield "Bon"
            yield "jour"

        with patch.object(gemini_service, "stream_chat", chunks):
            r = self.client.post(f"/api/chat/sessions/{session_id}/stream", json={"prompt": "Salut"}, headers=USER)
        self.assertEqual(r.text, "Bonjour")
        messages = self.client.get(f"/api/chat/sessions/{session_id}", headers=USER).json()["messages"]
        self.assertEqual(messages[-1]["content"], "Bonjour")

    def test_deleting_last_chat_clears_it(self):
        session_id = self.client.get("/api/chat/sessions", headers=USER).json()[0]["id"]
        body = self.client.delete(f"/api/chat/sessions/{session_id}", headers=USER).json()
        self.assertFalse(body["deleted"])
        self.assertEqual(body["session"]["messages"], [])
        self.assertEqual(len(self.client.get("/api/chat/sessions", headers=USER).json()), 1)

    def test_reply_is_dropped_if_chat_is_cleared_meanwhile(self):
        session_id = self.client.get("/api/chat/sessions", headers=USER).json()[0]["id"]
        app = self.app

        async def slow_answer(*args, **kwargs):
            store = await app.state.sessions.get("student-1", "sessions")
            await store.delete(session_id)
            return "late answer"

        with patch.object(gemini_service, "generate_chat_response", AsyncMock(side_effect=slow_answer)):
            r = self.client.post(f"/api/chat/sessions/{session_id}/messages", json={"prompt": "Bonjour"}, headers=USER)
        self.assertEqual(r.status_code, 409)
        messages = self.client.get(f"/api/chat/sessions/{session_id}", headers=USER).json()["messages"]
        self.assertEqual(messages, [])


class TestQuizRoutes(RouteTestCase):
    def generate(self):
        with patch.object(gemini_service, "generate_quiz", AsyncMock(return_value=QUESTIONS)):
            r = self.client.post(
                "/api/quizzes",
                json={"config": {"subject": "Cellule", "quiz_type": "multiple", "question_count": 2}},
                headers=USER,
            )
        self.assertEqual(r.status_code, 200)
        return r.json()

    def test_full_quiz(self):
        quiz_id = self.generate()["id"]
        for option in (2, 0):
            self.client.post(f"/api/quizzes/{quiz_id}/answers", json={"question_id": 1, "option_index": option},
                             headers=USER)
        self.client.post(f"/api/quizzes/{quiz_id}/answers", json={"question_id": 2, "option_index": 1}, headers=USER)
        finished = self.client.post(f"/api/quizzes/{quiz_id}/finish", headers=USER).json()
        self.assertTrue(finished["is_finished"])
        self.assertEqual(finished["score"], 1)
        self.assertEqual(finished["score_out_of_20"], 10)

        review = self.client.get(f"/api/quizzes/{quiz_id}/review", headers=USER).json()
        self.assertEqual([q["is_correct"] for q in review["questions"]], [True, False])

        r = self.client.post(f"/api/quizzes/{quiz_id}/answers", json={"question_id": 1, "option_index": 1},
                             headers=USER)
        self.assertEqual(r.status_code, 409)

    def test_subject_is_required(self):
        r = self.client.post("/api/quizzes", json={"config": {"source_type": "subject"}}, headers=USER)
        self.assertEqual(r.status_code, 400)

    def test_reset_during_generation_drops_result(self):
        app = self.app

        async def slow_generation(*args, **kwargs):
            store = await app.state.sessions.get("student-1", "quizzes")
            store.reset()
            return QUESTIONS

        with patch.object(gemini_service, "generate_quiz", AsyncMock(side_effect=slow_generation)):
            r = self.client.post("/api/quizzes", json={"config": {"subject": "Cellule"}}, headers=USER)
        self.assertEqual(r.status_code, 409)
        self.assertEqual(self.client.get("/api/quizzes", headers=USER).json(), [])

    def test_unknown_quiz(self):
        self.assertEqual(self.client.get("/api/quizzes/123", headers=USER).status_code, 404)


class TestChecklistRoutes(RouteTestCase):
    def test_checklist_round_trip(self):
        generated = Checklist(title="La Cellule", items=[
            ChecklistItem(title="Membrane", children=[ChecklistItem(title="Lipides"), ChecklistItem(title="Protéines")]),
            ChecklistItem(title="Noyau", is_completed=True),
        ])
        with patch.object(gemini_service, "generate_checklist", AsyncMock(return_value=generated)) as generate:
            r = self.client.post("/api/checklists", json={"course_id": "pre-cellule"}, headers=USER)
        self.assertEqual(r.status_code, 200)
        self.assertIn("Membrane plasmique", generate.call_args[0][0])
        checklist_id = r.json()["id"]
        self.assertEqual(r.json()["progress"], 0)

        body = self.client.post(f"/api/checklists/{checklist_id}/toggle", json={"item_id": "1.1"}, headers=USER).json()
        self.assertEqual(body["progress"], 33)
        self.client.post(f"/api/checklists/{checklist_id}/toggle", json={"item_id": "1.2"}, headers=USER)
        body = self.client.post(f"/api/checklists/{checklist_id}/toggle", json={"item_id": "2"}, headers=USER).json()
        self.assertEqual(body["progress"], 100)
        self.assertTrue(body["is_finished"])
        self.assertTrue(body["checklist"]["items"][0]["is_completed"])

        body = self.client.post(f"/api/checklists/{checklist_id}/reset", headers=USER).json()
        self.assertEqual(body["progress"], 0)

        r = self.client.post(f"/api/checklists/{checklist_id}/toggle", json={"item_id": "9"}, headers=USER)
        self.assertEqual(r.status_code, 404)

    def test_content_is_required(self):
        self.assertEqual(self.client.post("/api/checklists", json={}, headers=USER).status_code, 400)

    def test_reset_clears_flat_checklist(self):
        generated = Checklist(title="Os", items=[
            ChecklistItem(title="Crâne"), ChecklistItem(title="Fémur"), ChecklistItem(title="Tibia"),
        ])
        with patch.object(gemini_service, "generate_checklist", AsyncMock(return_value=generated)):
            checklist_id = self.client.post("/api/checklists", json={"content": "Les os"}, headers=USER).json()["id"]

        progress = []
        for item_id in ("1", "2", "3"):
            body = self.client.post(
                f"/api/checklists/{checklist_id}/toggle", json={"item_id": item_id}, headers=USER
            ).json()
            progress.append(body["progress"])
        self.assertEqual(progress, [33, 67, 100])

        body = self.client.post(f"/api/checklists/{checklist_id}/reset", headers=USER).json()
        self.assertEqual(body["progress"], 0)
        self.assertFalse(body["is_finished"])
        self.assertEqual([i["is_completed"] for i in body["checklist"]["items"]], [False, False, False])


class TestFlashcardRoutes(RouteTestCase):
    def test_navigate(self):
        cards = [Flashcard(id=str(i), front=f"Q{i}", back=f"A{i}") for i in range(4)]
        with patch.object(gemini_service, "generate_flashcards", AsyncMock(return_value=cards)):
            deck = self.client.post("/api/flashcards", json={"config": {"subject": "Os"}}, headers=USER).json()
        self.assertEqual(deck["progress"], 25)
        body = self.client.post(f"/api/flashcards/{deck['id']}/navigate", json={"index": 1}, headers=USER).json()
        self.assertEqual(body["progress"], 50)
        r = self.client.post(f"/api/flashcards/{deck['id']}/navigate", json={"index": 4}, headers=USER)
        self.assertEqual(r.status_code, 400)


class TestMindMapRoutes(RouteTestCase):
    def test_generate_and_reload(self):
        markdown = "# Coeur\n## Cavités\n- Oreillettes\n- Ventricules"
        with patch.object(gemini_service, "generate_mind_map", AsyncMock(return_value=markdown)):
            body = self.client.post("/api/mindmaps", json={"topic": "Coeur"}, headers=USER).json()
        self.assertEqual(body["tree"]["label"], "Coeur")
        reloaded = self.client.get(f"/api/mindmaps/{body['id']}", headers=USER).json()
        cavities = reloaded["tree"]["children"][0]
        self.assertEqual(cavities["children"][0]["label"], "Oreillettes")
        self.assertEqual(cavities["children"][0]["children"][0]["label"], "Ventricules")

    def test_parse(self):
        tree = self.client.post("/api/mindmaps/parse", json={"markdown": "# A\n# B"}).json()
        self.assertEqual(tree["label"], "Mind Map")


class TestMnemonicRoutes(RouteTestCase):
    def test_mnemonic(self):
        reply = MnemonicResponse(mnemonic="Sans Lait", breakdown=[{"char": "S", "meaning": "Scaphoïde"}])
        with patch.object(gemini_service, "generate_mnemonic", AsyncMock(return_value=reply)):
            r = self.client.post("/api/mnemonics", json={"topic": "Os du carpe"})
        self.assertEqual(r.json()["breakdown"][0]["meaning"], "Scaphoïde")


class TestCourseRoutes(RouteTestCase):
    def test_seed_courses_are_listed(self):
        ids = [c["id"] for c in self.client.get("/api/courses").json()]
        self.assertIn("pre-cellule", ids)
        self.assertEqual(len(ids), 5)

    def test_access(self):
        self.assertTrue(self.client.get("/api/access", headers=SUPERVISOR).json()["has_admin_panel"])
        self.assertFalse(self.client.get("/api/access", headers=USER).json()["has_admin_panel"])

    def test_only_staff_can_add_and_only_admins_delete(self):
        course = {"name": "Système nerveux", "content": "Neurones et cellules gliales", "category": "nerveux"}
        self.assertEqual(self.client.post("/api/courses", json=course, headers=USER).status_code, 403)
        added = self.client.post("/api/courses", json=course, headers=SUPERVISOR).json()
        self.assertEqual(len(self.client.get("/api/courses").json()), 6)

        self.assertEqual(self.client.delete(f"/api/courses/{added['id']}", headers=SUPERVISOR).status_code, 403)
        self.assertEqual(self.client.delete(f"/api/courses/{added['id']}", headers=ADMIN).status_code, 200)
        self.assertEqual(len(self.client.get("/api/courses").json()), 5)


class TestUploadRoutes(RouteTestCase):
    def test_text_upload(self):
        r = self.client.post("/api/upload", files={"file": ("notes.txt", "La cellule".encode(), "text/plain")})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["raw_text"], "La cellule")

    def test_unsupported_type(self):
        r = self.client.post("/api/upload", files={"file": ("photo.png", b"\x89PNG", "image/png")})
        self.assertEqual(r.status_code, 400)

    def test_empty_text(self):
        r = self.client.post("/api/upload", files={"file": ("empty.txt", b"   ", "text/plain")})
        self.assertEqual(r.status_code, 422)

    def test_fake_pdf(self):
        r = self.client.post("/api/upload", files={"file": ("fake.pdf", b"hello", "application/pdf")})
        self.assertEqual(r.status_code, 400)


if __name__ == "__main__":
    unittest.main()
