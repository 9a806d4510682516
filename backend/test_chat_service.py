import unittest

from models.sessions import ChatSession, DEFAULT_CHAT_TITLE
from services import chat_service


class TestChatService(unittest.TestCase):
    def test_first_user_message_names_the_chat(self):
        session = ChatSession()
        session = chat_service.append_message(
            session, chat_service.make_message("user", "Explique la différence entre mitose et méiose")
        )
        self.assertEqual(session.title, "Explique la différence entre m...")
        renamed = chat_service.append_message(session, chat_service.make_message("user", "Merci"))
        self.assertEqual(renamed.title, session.title)

    def test_renamed_chat_keeps_its_title(self):
        session = chat_service.rename(ChatSession(), "Révisions cardio")
        session = chat_service.append_message(session, chat_service.make_message("user", "Bonjour"))
        self.assertEqual(session.title, "Révisions cardio")

    def test_blank_rename_restores_default(self):
        self.assertEqual(chat_service.rename(ChatSession(title="x"), "   ").title, DEFAULT_CHAT_TITLE)

    def test_recent_history_skips_errors(self):
        messages = [chat_service.make_message("user", str(i)) for i in range(8)]
        messages.append(chat_service.make_message("model", "oops", is_error=True))
        history = chat_service.recent_history(messages)
        self.assertEqual([m.content for m in history], ["2", "3", "4", "5", "6", "7"])

    def test_cleared_chat(self):
        session = chat_service.append_message(ChatSession(), chat_service.make_message("user", "Salut"))
        cleared = session.cleared()
        self.assertEqual(cleared.messages, [])
        self.assertEqual(cleared.title, DEFAULT_CHAT_TITLE)
        self.assertEqual(cleared.id, session.id)


if __name__ == "__main__":
    unittest.main()
