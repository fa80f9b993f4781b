import discord
from discord.ext import commands
import logging
import asyncio
from typing import Any, Dict, Optional, Tuple
import os

from .config_manager import ConfigManager
from .data_manager import DataManager
from .models import Question, SessionPhase
from .quiz_controller import QuizController

logger = logging.getLogger(__name__)

COLOR_SUCCESS = 0x00ff00
COLOR_ERROR = 0xff0000
COLOR_WARNING = 0xffaa00
COLOR_INFO = 0x6699ff


class QuestionView(discord.ui.View):
    """
    Answer buttons for the question on screen, plus Skip and Finish.

    The view remembers the position and question it was rendered for, so a
    click on an older message is rejected instead of being applied to
    whatever question is current.
    """

    def __init__(self, bot: "QuizBot", question: Question, position: int):
        super().__init__(timeout=None)
        self.bot = bot
        self.question = question
        self.position = position

        for index, option in enumerate(question.options):
            button = discord.ui.Button(
                label=option[:80] or "?",
                style=discord.ButtonStyle.secondary,
                custom_id=f"answer:{index}",
            )
            button.callback = self._answer_callback(option[:1])
            self.add_item(button)

        skip_button = discord.ui.Button(label="Skip", style=discord.ButtonStyle.primary, custom_id="skip")
        skip_button.callback = self._skip_callback
        self.add_item(skip_button)

        finish_button = discord.ui.Button(label="Finish", style=discord.ButtonStyle.danger, custom_id="finish")
        finish_button.callback = self.bot.handle_finish
        self.add_item(finish_button)

    def _answer_callback(self, letter: str):
        async def callback(interaction: discord.Interaction):
            await self.bot.handle_answer(interaction, letter, self)
        return callback

    async def _skip_callback(self, interaction: discord.Interaction):
        await self.bot.handle_skip(interaction, self)


class FeedbackView(discord.ui.View):
    """Single Next button shown while answer feedback is visible."""

    def __init__(self, bot: "QuizBot", position: int):
        super().__init__(timeout=None)
        self.bot = bot
        self.position = position
        next_button = discord.ui.Button(label="Next", style=discord.ButtonStyle.primary, custom_id="next")
        next_button.callback = self._next_callback
        self.add_item(next_button)

    async def _next_callback(self, interaction: discord.Interaction):
        await self.bot.handle_next(interaction, self)


class QuizBot(commands.Bot):
    """Discord front end for a chunked quiz session"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.config_manager: Optional[ConfigManager] = None
        self.data_manager: Optional[DataManager] = None
        self.quiz_controller: Optional[QuizController] = None

        # Controls on the most recent quiz message; older ones are stopped
        self.active_view: Optional[discord.ui.View] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            self.config_manager.apply_config(self.app_config)
            settings = self.config_manager.get_quiz_settings()

            self.data_manager = DataManager(
                settings.data_url,
                index_resource=settings.index_resource,
                timeout=settings.request_timeout,
            )
            self.quiz_controller = QuizController(self.data_manager)

            if not await self.quiz_controller.initialize():
                logger.error("Quiz configuration failed to load; the bot will report the error to users")

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def setup_commands(self):
        """Register all slash commands"""
        @self.tree.command(name="help", description="Display available commands")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="start", description="Start the quiz")
        async def start_command(interaction: discord.Interaction):
            await self.handle_start(interaction)

        @self.tree.command(name="restart", description="Start over with a new question order")
        async def restart_command(interaction: discord.Interaction):
            await self.handle_restart(interaction)

        @self.tree.command(name="goto", description="Jump to a question number")
        async def goto_command(interaction: discord.Interaction, number: int):
            await self.handle_goto(interaction, number)

        @self.tree.command(name="previous", description="Go back one question")
        async def previous_command(interaction: discord.Interaction):
            await self.handle_previous(interaction)

        @self.tree.command(name="skip", description="Skip the current question (counts as wrong)")
        async def skip_command(interaction: discord.Interaction):
            await self.handle_skip(interaction)

        @self.tree.command(name="finish", description="Finish the quiz early")
        async def finish_command(interaction: discord.Interaction):
            await self.handle_finish(interaction)

        @self.tree.command(name="status", description="Show quiz progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        if self.quiz_controller is not None:
            self.quiz_controller.close()
        if self.data_manager is not None:
            await self.data_manager.close()
        await super().close()

    async def render_session(self) -> Tuple[discord.Embed, Optional[discord.ui.View]]:
        """
        Build the embed and controls for whatever the session currently shows.

        Returns:
            Tuple of (embed, view); view is None when there is nothing to click
        """
        snapshot = self.quiz_controller.snapshot()

        if snapshot.phase is SessionPhase.ERROR:
            return discord.Embed(
                title="❌ Error",
                description="Failed to load quiz configuration",
                color=COLOR_ERROR
            ), None

        if snapshot.phase is SessionPhase.LOADING:
            return discord.Embed(title="⏳ Loading quiz...", color=COLOR_INFO), None

        if snapshot.phase is SessionPhase.NOT_STARTED:
            embed = discord.Embed(
                title="🎯 Knowledge Quiz",
                description=f"Test your knowledge with {snapshot.total_questions} carefully selected questions!",
                color=COLOR_INFO
            )
            embed.set_footer(text="Use /start to begin")
            return embed, None

        if snapshot.phase is SessionPhase.COMPLETED:
            return self.build_results_embed(self.quiz_controller.get_results()), None

        question = await self.quiz_controller.current_question()
        header = f"Question {snapshot.question_number} of {snapshot.total_questions}"

        if question is None:
            embed = discord.Embed(
                title=header,
                description="⏳ Loading question... Use `/skip` or `/goto` if it does not appear.",
                color=COLOR_WARNING
            )
            return embed, None

        embed = discord.Embed(title=header, description=f"**{question.text}**", color=COLOR_INFO)
        embed.add_field(name="Options", value="\n".join(question.options) or "-", inline=False)

        feedback = self.quiz_controller.feedback
        if feedback.visible:
            if feedback.is_correct:
                verdict = "Correct ✅"
                embed.color = COLOR_SUCCESS
            else:
                verdict = f"Wrong ❌ Correct: {feedback.correct_letter} - {feedback.correct_option}"
                embed.color = COLOR_ERROR
            embed.add_field(name=verdict, value=question.explanation or "-", inline=False)

        embed.set_footer(text=f"Score: {self.quiz_controller.score}")

        if feedback.visible:
            return embed, FeedbackView(self, snapshot.position)
        return embed, QuestionView(self, question, snapshot.position)

    def build_results_embed(self, results: Dict[str, Any]) -> discord.Embed:
        embed = discord.Embed(
            title="🎉 Quiz Complete!",
            description=f"**{results['percentage']}%** Total Score",
            color=COLOR_SUCCESS
        )
        embed.add_field(name="Correct", value=str(results['score']), inline=True)
        embed.add_field(name="Incorrect", value=str(results['wrong']), inline=True)
        embed.set_footer(text="Use /restart to play again")
        return embed

    async def send_session(self, interaction: discord.Interaction):
        """Render the session as a new message in reply to the interaction."""
        if not interaction.response.is_done():
            await interaction.response.defer()

        embed, view = await self.render_session()
        self.replace_active_view(view)
        kwargs = {'embed': embed}
        if view is not None:
            kwargs['view'] = view
        await interaction.followup.send(**kwargs)

    def replace_active_view(self, view: Optional[discord.ui.View]):
        """Stop listening on the previous quiz message's buttons."""
        if self.active_view is not None and self.active_view is not view:
            self.active_view.stop()
        self.active_view = view

    async def is_stale_view(self, view: Optional[discord.ui.View]) -> bool:
        """
        Check whether a button press came from a message the session has moved past.

        Commands pass no view and are never stale.
        """
        if view is None:
            return False

        snapshot = self.quiz_controller.snapshot()
        if snapshot.phase is not SessionPhase.IN_PROGRESS or snapshot.position != view.position:
            return True

        if isinstance(view, QuestionView):
            # Same position after a restart holds a different question
            return await self.quiz_controller.current_question() is not view.question
        return False

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="🎯 Quiz Bot Commands",
                description="Answer with the buttons under each question",
                color=COLOR_SUCCESS
            )
            help_embed.add_field(
                name="🎮 Quiz Control",
                value=(
                    "`/start` - Start the quiz\n"
                    "`/restart` - Start over with a new question order\n"
                    "`/skip` - Skip the current question (counts as wrong)\n"
                    "`/finish` - Finish the quiz early\n"
                    "`/status` - Show quiz progress"
                ),
                inline=False
            )
            help_embed.add_field(
                name="🧭 Navigation",
                value=(
                    "`/goto <number>` - Jump to any question\n"
                    "`/previous` - Go back one question"
                ),
                inline=False
            )
            help_embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )

            await interaction.response.send_message(embed=help_embed)

        except Exception as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help", "❌ Help Error")

    async def handle_start(self, interaction: discord.Interaction):
        """Handle /start command"""
        try:
            phase = self.quiz_controller.phase
            if phase is SessionPhase.IN_PROGRESS:
                await self.send_warning_response(
                    interaction, "A quiz is already running. Use `/restart` to start over."
                )
                return

            if phase in (SessionPhase.ERROR, SessionPhase.LOADING):
                await self.send_session(interaction)
                return

            if phase is SessionPhase.COMPLETED:
                self.quiz_controller.restart()
            else:
                self.quiz_controller.start()
            await self.send_session(interaction)

        except Exception as e:
            logger.error(f"Error in start command: {e}")
            await self.send_error_response(interaction, "Failed to start quiz", "❌ Quiz Start Error")

    async def handle_restart(self, interaction: discord.Interaction):
        """Handle /restart command"""
        try:
            if not self.quiz_controller.restart():
                await self.send_warning_response(interaction, "There is no quiz to restart. Use `/start` first.")
                return
            await self.send_session(interaction)

        except Exception as e:
            logger.error(f"Error in restart command: {e}")
            await self.send_error_response(interaction, "Failed to restart quiz", "❌ Restart Error")

    async def handle_goto(self, interaction: discord.Interaction, number: int):
        """Handle /goto command; number is 1-based as shown to users"""
        try:
            if not self.quiz_controller.go_to(number - 1):
                snapshot = self.quiz_controller.snapshot()
                if snapshot.phase is not SessionPhase.IN_PROGRESS:
                    message = "No quiz is running. Use `/start` first."
                else:
                    message = f"Question number must be between 1 and {snapshot.total_questions}."
                await self.send_warning_response(interaction, message)
                return
            await self.send_session(interaction)

        except Exception as e:
            logger.error(f"Error in goto command: {e}")
            await self.send_error_response(interaction, "Failed to change question", "❌ Navigation Error")

    async def handle_previous(self, interaction: discord.Interaction):
        """Handle /previous command"""
        try:
            if not self.quiz_controller.previous():
                await self.send_warning_response(interaction, "There is no previous question.")
                return
            await self.send_session(interaction)

        except Exception as e:
            logger.error(f"Error in previous command: {e}")
            await self.send_error_response(interaction, "Failed to change question", "❌ Navigation Error")

    async def handle_skip(self, interaction: discord.Interaction, view: Optional[QuestionView] = None):
        """Handle /skip command and the Skip button"""
        try:
            if await self.is_stale_view(view):
                await self.send_warning_response(interaction, "Already moved on.")
                return

            if not self.quiz_controller.skip():
                await self.send_warning_response(interaction, "Nothing to skip right now.")
                return
            await self.send_session(interaction)

        except Exception as e:
            logger.error(f"Error in skip command: {e}")
            await self.send_error_response(interaction, "Failed to skip question", "❌ Skip Error")

    async def handle_finish(self, interaction: discord.Interaction):
        """Handle /finish command and the Finish button"""
        try:
            if not self.quiz_controller.finish():
                await self.send_warning_response(interaction, "No quiz is running, or feedback is still showing.")
                return
            await self.send_session(interaction)

        except Exception as e:
            logger.error(f"Error in finish command: {e}")
            await self.send_error_response(interaction, "Failed to finish quiz", "❌ Finish Error")

    async def handle_next(self, interaction: discord.Interaction, view: Optional[FeedbackView] = None):
        """Handle the Next button shown with answer feedback"""
        try:
            if await self.is_stale_view(view):
                await self.send_warning_response(interaction, "Already moved on.")
                return

            if not self.quiz_controller.feedback.visible or not self.quiz_controller.advance():
                await self.send_warning_response(interaction, "Already moved on.")
                return
            await self.send_session(interaction)

        except Exception as e:
            logger.error(f"Error advancing quiz: {e}")
            await self.send_error_response(interaction, "Failed to load the next question", "❌ Quiz Error")

    async def handle_answer(
        self,
        interaction: discord.Interaction,
        letter: str,
        view: Optional[QuestionView] = None,
    ):
        """Handle an answer button; shows feedback, then auto-advances after the configured delay"""
        try:
            if await self.is_stale_view(view):
                await self.send_warning_response(interaction, "Already moved on.")
                return

            await interaction.response.defer()

            feedback = await self.quiz_controller.submit_answer(letter)
            if feedback is None:
                return

            embed, feedback_view = await self.render_session()
            self.replace_active_view(feedback_view)
            await interaction.edit_original_response(embed=embed, view=feedback_view)

            delay = self.config_manager.get_quiz_settings().feedback_delay
            if delay <= 0:
                return

            position = self.quiz_controller.position
            await asyncio.sleep(delay)

            # Skip if the Next button or a command already moved on
            if self.quiz_controller.feedback.visible and self.quiz_controller.position == position:
                self.quiz_controller.advance()
                await self.send_session(interaction)

        except Exception as e:
            logger.error(f"Error handling answer: {e}")
            await self.send_error_response(interaction, "Failed to record answer", "❌ Answer Error")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            snapshot = self.quiz_controller.snapshot()
            embed = discord.Embed(
                title="📊 Quiz Status",
                description=f"Status: **{snapshot.phase.value.replace('_', ' ').title()}**",
                color=COLOR_INFO
            )

            if snapshot.phase in (SessionPhase.IN_PROGRESS, SessionPhase.COMPLETED):
                embed.add_field(
                    name="Progress",
                    value=f"Question {snapshot.question_number} of {snapshot.total_questions}",
                    inline=False
                )
                embed.add_field(name="Correct", value=str(snapshot.score), inline=True)
                embed.add_field(name="Incorrect", value=str(snapshot.wrong), inline=True)

            chunk_error = self.quiz_controller.last_chunk_error
            if chunk_error is not None:
                embed.add_field(name="⚠️ Loading Problem", value=str(chunk_error)[:1024], inline=False)

            if self.quiz_controller.config_error is not None:
                embed.add_field(
                    name="❌ Configuration Error",
                    value=str(self.quiz_controller.config_error)[:1024],
                    inline=False
                )

            embed.set_footer(text="Use /help to see all available commands")
            await interaction.response.send_message(embed=embed)

        except Exception as e:
            logger.error(f"Error in status command: {e}")
            await self.send_error_response(interaction, "Failed to get quiz status", "❌ Status Error")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        await self._send_ephemeral(interaction, discord.Embed(title=title, description=message, color=COLOR_ERROR))

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        await self._send_ephemeral(interaction, discord.Embed(title=title, description=message, color=COLOR_WARNING))

    async def _send_ephemeral(self, interaction: discord.Interaction, embed: discord.Embed):
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error(f"Failed to send response to user: {embed.title}")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Discord Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
