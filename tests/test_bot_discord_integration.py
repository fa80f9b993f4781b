"""
Unit tests for Discord bot integration and API interactions.
"""
import asyncio
import unittest
from unittest.mock import Mock, AsyncMock, patch

import discord

from chunkquiz.bot import (
    COLOR_ERROR, COLOR_SUCCESS, COLOR_WARNING, FeedbackView, QuestionView, QuizBot
)
from chunkquiz.config_manager import ConfigManager
from chunkquiz.data_manager import ConfigLoadError
from chunkquiz.models import Question, SessionPhase
from chunkquiz.quiz_controller import QuizController
from tests.test_fixtures import GatedChunkLoader, InOrderEngine, MockDiscordObjects, TestFixtures


class TestDiscordBotIntegration(unittest.IsolatedAsyncioTestCase):
    """Test Discord bot command handlers with mocked Discord API."""

    async def asyncSetUp(self):
        """Create a bot with a 5 question quiz in chunks of 2."""
        self.bot = QuizBot({'bot': {'command_prefix': '?'}})
        self.bot.config_manager = ConfigManager()
        self.bot.config_manager.set_feedback_delay(0)

        self.loader = GatedChunkLoader(TestFixtures.create_chunk_questions(5, 2), open_gates=True)
        self.bot.quiz_controller = QuizController(self.loader, InOrderEngine(), TestFixtures.create_config(5, 2))
        self.controller = self.bot.quiz_controller

        self.interaction = MockDiscordObjects.create_mock_interaction()

    def test_command_prefix_from_config(self):
        self.assertEqual(self.bot.command_prefix, '?')

    async def test_setup_commands_registers_slash_commands(self):
        await self.bot.setup_commands()

        names = {command.name for command in self.bot.tree.get_commands()}
        self.assertEqual(names, {"help", "start", "restart", "goto", "previous", "skip", "finish", "status"})

    async def test_setup_hook_with_unreachable_data(self):
        """Test that setup completes with the quiz in the error phase when the index fails."""
        with patch('chunkquiz.bot.DataManager') as data_manager_cls:
            data_manager_cls.return_value.load_config = AsyncMock(side_effect=ConfigLoadError("unreachable"))
            await self.bot.setup_hook()

        self.assertIs(self.bot.quiz_controller.phase, SessionPhase.ERROR)
        data_manager_cls.assert_called_once_with(
            "http://localhost:8000/data/", index_resource="questions_index.json", timeout=None
        )

    async def test_start_shows_first_question(self):
        await self.bot.handle_start(self.interaction)

        self.assertIs(self.controller.phase, SessionPhase.IN_PROGRESS)
        self.interaction.response.defer.assert_awaited_once()
        embed = MockDiscordObjects.sent_embed(self.interaction.followup.send)
        self.assertEqual(embed.title, "Question 1 of 5")
        self.assertIn("Question 0?", embed.description)
        self.assertEqual(embed.footer.text, "Score: 0")

        view = self.interaction.followup.send.call_args.kwargs['view']
        self.assertIsInstance(view, QuestionView)
        labels = [item.label for item in view.children]
        self.assertEqual(labels[-2:], ["Skip", "Finish"])
        self.assertEqual(len(labels), 6)

    async def test_start_while_running_warns(self):
        self.controller.start()

        await self.bot.handle_start(self.interaction)

        self.interaction.response.send_message.assert_awaited_once()
        kwargs = self.interaction.response.send_message.call_args.kwargs
        self.assertTrue(kwargs['ephemeral'])
        self.assertEqual(kwargs['embed'].color.value, COLOR_WARNING)

    async def test_start_after_completion_restarts(self):
        self.controller.start()
        self.controller.skip()
        self.controller.finish()

        await self.bot.handle_start(self.interaction)

        self.assertIs(self.controller.phase, SessionPhase.IN_PROGRESS)
        self.assertEqual(self.controller.wrong, 0)

    async def test_start_with_failed_configuration(self):
        self.bot.quiz_controller = QuizController(Mock(), InOrderEngine())
        self.bot.quiz_controller.phase = SessionPhase.ERROR

        await self.bot.handle_start(self.interaction)

        embed = MockDiscordObjects.sent_embed(self.interaction.followup.send)
        self.assertEqual(embed.description, "Failed to load quiz configuration")
        self.assertEqual(embed.color.value, COLOR_ERROR)
        self.assertNotIn('view', self.interaction.followup.send.call_args.kwargs)

    async def test_correct_answer_shows_feedback(self):
        self.controller.start()

        await self.bot.handle_answer(self.interaction, "A")

        self.assertEqual(self.controller.score, 1)
        kwargs = self.interaction.edit_original_response.call_args.kwargs
        self.assertEqual(kwargs['embed'].color.value, COLOR_SUCCESS)
        self.assertEqual(kwargs['embed'].fields[-1].name, "Correct ✅")
        self.assertEqual(kwargs['embed'].fields[-1].value, "Explanation 0")
        self.assertIsInstance(kwargs['view'], FeedbackView)
        # Delay of 0 means the user advances with the Next button
        self.assertEqual(self.controller.position, 0)

    async def test_wrong_answer_names_correct_option(self):
        self.controller.start()

        await self.bot.handle_answer(self.interaction, "C")

        embed = self.interaction.edit_original_response.call_args.kwargs['embed']
        self.assertEqual(embed.fields[-1].name, "Wrong ❌ Correct: A - A. Option 0a")
        self.assertEqual(embed.color.value, COLOR_ERROR)

    async def test_answer_auto_advances_after_delay(self):
        self.bot.config_manager.set_feedback_delay(0.01)
        self.controller.start()

        await self.bot.handle_answer(self.interaction, "A")

        self.assertEqual(self.controller.position, 1)
        self.assertFalse(self.controller.feedback.visible)
        embed = MockDiscordObjects.sent_embed(self.interaction.followup.send)
        self.assertEqual(embed.title, "Question 2 of 5")

    async def test_answer_does_not_advance_after_navigation(self):
        self.bot.config_manager.set_feedback_delay(0.2)
        self.controller.start()

        answer = asyncio.ensure_future(self.bot.handle_answer(self.interaction, "A"))
        await asyncio.sleep(0.05)
        self.controller.go_to(3)
        await answer

        self.assertEqual(self.controller.position, 3)
        self.interaction.followup.send.assert_not_awaited()

    async def test_duplicate_answer_is_ignored(self):
        self.controller.start()
        await self.bot.handle_answer(self.interaction, "A")

        second = MockDiscordObjects.create_mock_interaction()
        await self.bot.handle_answer(second, "B")

        self.assertEqual((self.controller.score, self.controller.wrong), (1, 0))
        second.edit_original_response.assert_not_awaited()

    async def test_old_answer_buttons_rejected_after_skip(self):
        await self.bot.handle_start(self.interaction)
        old_view = self.interaction.followup.send.call_args.kwargs['view']

        await self.bot.handle_skip(MockDiscordObjects.create_mock_interaction())
        self.assertTrue(old_view.is_finished())

        # "B" is wrong for question 0 but right for question 1, now current
        click = MockDiscordObjects.create_mock_interaction()
        await old_view.children[1].callback(click)

        self.assertEqual((self.controller.score, self.controller.wrong), (0, 1))
        self.assertEqual(self.controller.position, 1)
        self.assertFalse(self.controller.feedback.visible)
        click.response.defer.assert_not_awaited()
        kwargs = click.response.send_message.call_args.kwargs
        self.assertEqual(kwargs['embed'].description, "Already moved on.")
        self.assertTrue(kwargs['ephemeral'])

    async def test_current_answer_buttons_score(self):
        await self.bot.handle_start(self.interaction)
        view = self.interaction.followup.send.call_args.kwargs['view']

        click = MockDiscordObjects.create_mock_interaction()
        await view.children[0].callback(click)

        self.assertEqual(self.controller.score, 1)
        click.edit_original_response.assert_awaited_once()
        self.assertTrue(view.is_finished())
        self.assertIsInstance(self.bot.active_view, FeedbackView)

    async def test_old_skip_button_rejected_after_goto(self):
        await self.bot.handle_start(self.interaction)
        old_view = self.interaction.followup.send.call_args.kwargs['view']
        await self.bot.handle_goto(MockDiscordObjects.create_mock_interaction(), 3)

        click = MockDiscordObjects.create_mock_interaction()
        await old_view.children[-2].callback(click)

        self.assertEqual(self.controller.wrong, 0)
        self.assertEqual(self.controller.position, 2)
        self.assertEqual(click.response.send_message.call_args.kwargs['embed'].description, "Already moved on.")

    async def test_old_next_button_rejected(self):
        self.controller.start()
        await self.bot.handle_answer(self.interaction, "A")
        old_feedback_view = self.interaction.edit_original_response.call_args.kwargs['view']

        self.controller.go_to(3)
        await self.controller.submit_answer("D")

        click = MockDiscordObjects.create_mock_interaction()
        await old_feedback_view.children[0].callback(click)

        self.assertEqual(self.controller.position, 3)
        self.assertTrue(self.controller.feedback.visible)
        self.assertEqual(click.response.send_message.call_args.kwargs['embed'].description, "Already moved on.")

    async def test_next_button(self):
        self.controller.start()
        await self.bot.handle_answer(self.interaction, "A")

        next_interaction = MockDiscordObjects.create_mock_interaction()
        await self.bot.handle_next(next_interaction)

        self.assertEqual(self.controller.position, 1)
        embed = MockDiscordObjects.sent_embed(next_interaction.followup.send)
        self.assertEqual(embed.title, "Question 2 of 5")

    async def test_next_without_feedback_warns(self):
        self.controller.start()

        await self.bot.handle_next(self.interaction)

        self.assertEqual(self.controller.position, 0)
        self.assertTrue(self.interaction.response.send_message.call_args.kwargs['ephemeral'])

    async def test_goto_uses_question_numbers(self):
        self.controller.start()

        await self.bot.handle_goto(self.interaction, 4)

        self.assertEqual(self.controller.position, 3)
        embed = MockDiscordObjects.sent_embed(self.interaction.followup.send)
        self.assertEqual(embed.title, "Question 4 of 5")
        self.assertIn("Question 3?", embed.description)

    async def test_goto_out_of_range(self):
        self.controller.start()

        await self.bot.handle_goto(self.interaction, 6)

        self.assertEqual(self.controller.position, 0)
        embed = self.interaction.response.send_message.call_args.kwargs['embed']
        self.assertIn("between 1 and 5", embed.description)

    async def test_previous(self):
        self.controller.start()
        self.controller.go_to(2)

        await self.bot.handle_previous(self.interaction)

        self.assertEqual(self.controller.position, 1)

    async def test_previous_at_first_question_warns(self):
        self.controller.start()

        await self.bot.handle_previous(self.interaction)

        self.interaction.response.send_message.assert_awaited_once()
        self.interaction.followup.send.assert_not_awaited()

    async def test_skip(self):
        self.controller.start()

        await self.bot.handle_skip(self.interaction)

        self.assertEqual(self.controller.wrong, 1)
        self.assertEqual(self.controller.position, 1)

    async def test_finish_shows_results(self):
        self.controller.start()
        await self.bot.handle_answer(self.interaction, "A")
        self.controller.advance()

        finish_interaction = MockDiscordObjects.create_mock_interaction()
        await self.bot.handle_finish(finish_interaction)

        self.assertIs(self.controller.phase, SessionPhase.COMPLETED)
        embed = MockDiscordObjects.sent_embed(finish_interaction.followup.send)
        self.assertEqual(embed.title, "🎉 Quiz Complete!")
        self.assertIn("**20%**", embed.description)
        self.assertEqual([(f.name, f.value) for f in embed.fields], [("Correct", "1"), ("Incorrect", "0")])

    async def test_restart_without_quiz_warns(self):
        await self.bot.handle_restart(self.interaction)

        self.assertIs(self.controller.phase, SessionPhase.NOT_STARTED)
        self.assertTrue(self.interaction.response.send_message.call_args.kwargs['ephemeral'])

    async def test_unavailable_question_shows_loading(self):
        self.loader.chunks["questions_chunk_01.json"] = []
        self.controller.start()

        await self.bot.send_session(self.interaction)

        embed = MockDiscordObjects.sent_embed(self.interaction.followup.send)
        self.assertIn("Loading question", embed.description)
        self.assertNotIn('view', self.interaction.followup.send.call_args.kwargs)

    async def test_status(self):
        self.controller.start()
        self.controller.skip()

        await self.bot.handle_status(self.interaction)

        embed = self.interaction.response.send_message.call_args.kwargs['embed']
        self.assertIn("In Progress", embed.description)
        fields = {field.name: field.value for field in embed.fields}
        self.assertEqual(fields["Progress"], "Question 2 of 5")
        self.assertEqual(fields["Incorrect"], "1")

    async def test_help(self):
        await self.bot.handle_help(self.interaction)

        embed = self.interaction.response.send_message.call_args.kwargs['embed']
        self.assertEqual(embed.title, "🎯 Quiz Bot Commands")
        self.assertIn("Feedback: manual advance", embed.fields[-1].value)

    async def test_handler_error_sends_error_response(self):
        self.bot.quiz_controller = Mock()
        self.bot.quiz_controller.skip.side_effect = RuntimeError("boom")

        await self.bot.handle_skip(self.interaction)

        embed = self.interaction.response.send_message.call_args.kwargs['embed']
        self.assertEqual(embed.title, "❌ Skip Error")

    async def test_send_failure_is_logged(self):
        self.interaction.response.send_message.side_effect = discord.HTTPException(Mock(status=500), "down")

        with self.assertLogs('chunkquiz.bot', level='ERROR'):
            await self.bot.send_warning_response(self.interaction, "Something")


class TestQuestionView(unittest.IsolatedAsyncioTestCase):
    """Test the answer buttons attached to a question."""

    async def test_buttons_submit_option_letter(self):
        bot = Mock()
        bot.handle_answer = AsyncMock()
        question = Question(text="Capital of France?", options=["A. Paris", "B. Rome"], answer="A")

        view = QuestionView(bot, question, 0)
        interaction = MockDiscordObjects.create_mock_interaction()
        await view.children[1].callback(interaction)

        bot.handle_answer.assert_awaited_once_with(interaction, "B", view)
        self.assertEqual([item.custom_id for item in view.children], ["answer:0", "answer:1", "skip", "finish"])

    async def test_skip_button_passes_view(self):
        bot = Mock()
        bot.handle_skip = AsyncMock()
        question = Question(text="Capital of France?", options=["A. Paris", "B. Rome"], answer="A")

        view = QuestionView(bot, question, 3)
        interaction = MockDiscordObjects.create_mock_interaction()
        await view.children[2].callback(interaction)

        bot.handle_skip.assert_awaited_once_with(interaction, view)
        self.assertEqual(view.position, 3)


if __name__ == '__main__':
    unittest.main()
