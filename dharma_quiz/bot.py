import discord
from discord import app_commands
from discord.ext import commands
import logging
from typing import Dict, List, Optional, Tuple
import os
from pathlib import Path
from datetime import datetime

from .data_manager import DataManager
from .config_manager import ConfigManager
from .leaderboard import Leaderboard, TIMEFRAMES
from .models import QuizAttempt, QuizSession, QuizSummary
from .progress_store import ProgressStore, utc_now
from .quiz_controller import (
    QuizController,
    InsufficientQuestionsError,
    InvalidTransitionError,
    InvalidAnswerError,
)
from .storage import JsonFileStorage
from .anonymous_policy import GATE_TIME_LIMIT

logger = logging.getLogger(__name__)

OPTION_LABELS = "ABCDEFGHIJKLMNOPQRSTUVWXY"
QUESTION_VIEW_TIMEOUT = 600  # seconds

SessionKey = Tuple[int, str]


class QuestionView(discord.ui.View):
    """One button per option of the session's current question."""

    def __init__(self, bot: "DharmaQuizBot", owner_id: int, session: QuizSession):
        super().__init__(timeout=QUESTION_VIEW_TIMEOUT)
        self.bot = bot
        self.owner_id = owner_id
        self.category_id = session.category_id
        question = session.current_question
        self.question_id = question.id

        for index, option in enumerate(question.options[:len(OPTION_LABELS)]):
            button = discord.ui.Button(
                label=f"{OPTION_LABELS[index]}. {option}"[:80],
                style=discord.ButtonStyle.primary,
                row=index // 5
            )
            button.callback = self._make_callback(index)
            self.add_item(button)

    def _make_callback(self, index: int):
        async def callback(interaction: discord.Interaction):
            await self.bot.handle_answer(interaction, self.owner_id, self.category_id, self.question_id, index)
        return callback


class DharmaQuizBot(commands.Bot):
    """Discord bot that runs devotional quizzes for each participant."""

    def __init__(self, config=None):
        # Minimal intents for slash commands
        intents = discord.Intents.none()
        intents.guilds = True

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = None
        self.leaderboard: Optional[Leaderboard] = None

        self.clock = utc_now

        # Sessions currently shown to participants, keyed by (user id, category),
        # and when each was last stored
        self.active_sessions: Dict[SessionKey, QuizSession] = {}
        self.session_times: Dict[SessionKey, datetime] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")
            self.initialize_components()
            await self.setup_commands()
            logger.info("Bot setup completed successfully")
        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def initialize_components(self):
        """Create managers from the loaded configuration."""
        self.config_manager = ConfigManager()
        if self.app_config:
            for error in self.config_manager.apply_config(self.app_config):
                logger.warning(f"Configuration value ignored: {error}")

        health = self.config_manager.get_configuration_health_check()
        for message in health['errors'] + health['warnings']:
            logger.warning(message)

        self.data_manager = DataManager(self.config_manager.get_quiz_directory())
        self.leaderboard = Leaderboard(self.config_manager.get_leaderboard_path())

        categories = self.data_manager.get_categories()
        logger.info(f"Found {len(categories)} quiz categories in {self.config_manager.get_quiz_directory()}")

    async def setup_commands(self):
        """Register all slash commands"""
        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="categories", description="List the available quiz categories")
        async def categories_command(interaction: discord.Interaction):
            await self.handle_categories(interaction)

        @self.tree.command(name="quiz", description="Start or resume a quiz")
        @app_commands.describe(category="Quiz category", questions="Number of questions (1-100)")
        async def quiz_command(interaction: discord.Interaction, category: str, questions: Optional[int] = None):
            await self.handle_quiz(interaction, category, questions)

        @self.tree.command(name="restart", description="Discard your progress and start the quiz again")
        @app_commands.describe(category="Quiz category")
        async def restart_command(interaction: discord.Interaction, category: str):
            await self.handle_restart(interaction, category)

        @self.tree.command(name="progress", description="Show your saved progress in a category")
        @app_commands.describe(category="Quiz category")
        async def progress_command(interaction: discord.Interaction, category: str):
            await self.handle_progress(interaction, category)

        @self.tree.command(name="leaderboard", description="Show the top scores of a category")
        @app_commands.describe(category="Quiz category", timeframe="Period to rank")
        @app_commands.choices(timeframe=[
            app_commands.Choice(name="Today", value="daily"),
            app_commands.Choice(name="This Week", value="weekly"),
            app_commands.Choice(name="This Month", value="monthly"),
            app_commands.Choice(name="All Time", value="all-time"),
        ])
        async def leaderboard_command(
            interaction: discord.Interaction,
            category: str,
            timeframe: Optional[app_commands.Choice[str]] = None
        ):
            await self.handle_leaderboard(interaction, category, timeframe.value if timeframe else "all-time")

        async def category_autocomplete(interaction: discord.Interaction, current: str):
            return self.category_choices(current)

        for command in (quiz_command, restart_command, progress_command, leaderboard_command):
            command.autocomplete("category")(category_autocomplete)

        logger.info("Slash commands registered successfully")

    def category_choices(self, current: str) -> List[app_commands.Choice[str]]:
        """Categories whose slug or name contains the typed text."""
        current = current.lower()
        return [
            app_commands.Choice(name=category.name, value=category.slug)
            for category in self.data_manager.get_categories()
            if current in category.slug or current in category.name.lower()
        ][:25]

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    # Participant state

    def is_authenticated(self, user) -> bool:
        """A participant is signed in when they hold the configured role."""
        role_name = self.config_manager.get_authenticated_role()
        roles = getattr(user, 'roles', None) or []
        return any(role.name == role_name for role in roles)

    def get_progress_store(self, user_id: int) -> ProgressStore:
        """Progress store scoped to one participant; unavailable when saving is disabled."""
        progress_directory = self.config_manager.get_progress_directory()
        storage = None
        if progress_directory:
            storage = JsonFileStorage(Path(progress_directory) / f"{user_id}.json")
        return ProgressStore(storage, max_age=self.config_manager.get_progress_max_age(), clock=self.clock)

    def get_controller(self, user_id: int) -> QuizController:
        return QuizController(
            self.get_progress_store(user_id),
            data_manager=self.data_manager,
            policy=self.config_manager.get_anonymous_policy(),
            clock=self.clock
        )

    def remember_session(self, key: SessionKey, session: QuizSession) -> None:
        self.active_sessions[key] = session
        self.session_times[key] = self.clock()

    def forget_session(self, key: SessionKey) -> None:
        self.active_sessions.pop(key, None)
        self.session_times.pop(key, None)

    def prune_sessions(self) -> None:
        """Drop cached sessions that have outlived the progress expiry window."""
        cutoff = self.clock() - self.config_manager.get_progress_max_age()
        for key in [k for k, stored_at in self.session_times.items() if stored_at < cutoff]:
            logger.info(f"Dropping expired session for user {key[0]} in '{key[1]}'")
            self.forget_session(key)

    def get_session(self, user_id: int, category_id: str, controller: QuizController) -> Optional[QuizSession]:
        """
        Session shown to the participant.

        Saved progress is authoritative whenever it is available, so its expiry
        also applies to sessions the bot still holds. Without saved progress the
        cached copy is used until it outlives the same window.
        """
        self.prune_sessions()
        key = (user_id, category_id)

        if not controller.progress_store.available:
            return self.active_sessions.get(key)

        session = controller.resume(category_id)
        if session is None:
            self.forget_session(key)
        else:
            self.active_sessions[key] = session
            self.session_times.setdefault(key, self.clock())
        return session

    # Embeds

    def build_question_embed(self, session: QuizSession, authenticated: bool, controller: QuizController) -> discord.Embed:
        question = session.current_question
        progress = controller.get_session_progress(session, authenticated)

        embed = discord.Embed(
            title=f"❓ Question {progress['current_question']}/{progress['total_questions']}",
            description=question.question_text,
            color=0xff9933
        )
        embed.add_field(
            name="Options",
            value="\n".join(
                f"**{OPTION_LABELS[i]}.** {option}"
                for i, option in enumerate(question.options[:len(OPTION_LABELS)])
            ),
            inline=False
        )

        footer = f"Score: {session.score}"
        if progress['remaining_questions'] is not None:
            footer += (
                f" • Guest: {progress['remaining_questions']} questions, "
                f"{progress['remaining_seconds']}s left"
            )
        embed.set_footer(text=footer)
        return embed

    def build_sign_in_embed(self, reason: Optional[str]) -> discord.Embed:
        if reason == GATE_TIME_LIMIT:
            description = "Your guest time is up."
        else:
            description = "You have reached the guest question limit."
        role_name = self.config_manager.get_authenticated_role()
        embed = discord.Embed(
            title="🔒 Sign in to continue",
            description=(
                f"{description}\n\nAsk a server moderator for the **{role_name}** role to keep "
                f"playing, save your scores and appear on the leaderboard. "
                f"Your progress is kept, use `/quiz` again once signed in."
            ),
            color=0xffaa00
        )
        return embed

    def build_summary_embed(self, summary: QuizSummary, recorded: bool) -> discord.Embed:
        percentage = int(summary.score / summary.total * 100) if summary.total else 0
        embed = discord.Embed(
            title="🏁 Quiz Complete!",
            description=f"**{summary.category_id}**",
            color=0x00ff00
        )
        embed.add_field(name="📊 Score", value=f"{summary.score}/{summary.total} ({percentage}%)", inline=False)
        if recorded:
            embed.set_footer(text="Your score has been added to the leaderboard")
        else:
            embed.set_footer(text="Sign in to appear on the leaderboard")
        return embed

    # Command handlers

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="🪔 Dharma Quiz Commands",
                description="Test your knowledge of the scriptures",
                color=0xff9933
            )
            help_embed.add_field(
                name="🎮 Quiz Commands",
                value=(
                    "`/categories` - List the quiz categories\n"
                    "`/quiz <category> [questions]` - Start a quiz or resume where you left off\n"
                    "`/restart <category>` - Discard your progress and start again\n"
                    "`/progress <category>` - Show your saved progress\n"
                    "`/leaderboard <category> [timeframe]` - Show the top scores"
                ),
                inline=False
            )
            help_embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )
            await interaction.response.send_message(embed=help_embed, ephemeral=True)
        except Exception as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help", "❌ Help Error")

    async def handle_categories(self, interaction: discord.Interaction):
        """Handle /categories command"""
        try:
            categories = self.data_manager.get_categories()
            if not categories:
                await self.send_info_response(
                    interaction,
                    "No quiz categories are available yet.",
                    "📚 No Categories"
                )
                return

            embed = discord.Embed(title="📚 Quiz Categories", color=0xff9933)
            for category in categories[:25]:
                value = f"`{category.slug}` • {category.question_count} questions"
                if category.description:
                    value = f"{category.description}\n{value}"
                embed.add_field(name=category.name, value=value, inline=False)
            await interaction.response.send_message(embed=embed, ephemeral=True)
        except Exception as e:
            logger.error(f"Error in categories command: {e}")
            await self.send_error_response(interaction, "Failed to list categories", "❌ Categories Error")

    async def handle_quiz(self, interaction: discord.Interaction, category: str, questions: Optional[int] = None):
        """Handle /quiz command: resume saved progress or start a new session"""
        try:
            user_id = interaction.user.id
            authenticated = self.is_authenticated(interaction.user)

            if not self.data_manager.category_exists(category):
                await self.send_error_response(
                    interaction,
                    f"Unknown category `{category}`. Use `/categories` to see what is available.",
                    "❌ Unknown Category"
                )
                return

            controller = self.get_controller(user_id)
            session = self.get_session(user_id, category, controller)

            if session is not None and not session.is_complete:
                reason = controller.gate_reason(session, authenticated)
                if reason:
                    await interaction.response.send_message(embed=self.build_sign_in_embed(reason), ephemeral=True)
                    return
                logger.info(f"User {user_id} resuming '{category}' at question {session.current_index + 1}")
                await self.send_question(interaction, user_id, session, authenticated, controller, resumed=True)
                return

            if questions is not None and not (
                ConfigManager.MIN_QUESTION_COUNT <= questions <= ConfigManager.MAX_QUESTION_COUNT
            ):
                await self.send_error_response(
                    interaction,
                    f"Choose between {ConfigManager.MIN_QUESTION_COUNT} and "
                    f"{ConfigManager.MAX_QUESTION_COUNT} questions.",
                    "❌ Invalid Question Count"
                )
                return
            count = questions if questions is not None else self.config_manager.get_question_count()

            session = controller.start_category(category, count)
            self.remember_session((user_id, category), session)
            await self.send_question(interaction, user_id, session, authenticated, controller)

        except InsufficientQuestionsError as e:
            logger.warning(f"Quiz start failed: {e}")
            await self.send_error_response(interaction, "This category has no questions yet.", "❌ No Questions")
        except Exception as e:
            logger.error(f"Error in quiz command: {e}")
            await self.send_error_response(interaction, "Failed to start quiz", "❌ Quiz Start Error")

    async def handle_restart(self, interaction: discord.Interaction, category: str):
        """Handle /restart command"""
        try:
            user_id = interaction.user.id
            authenticated = self.is_authenticated(interaction.user)
            controller = self.get_controller(user_id)

            existing = self.get_session(user_id, category, controller)
            if existing is not None and not existing.is_complete:
                reason = controller.gate_reason(existing, authenticated)
                if reason:
                    await interaction.response.send_message(embed=self.build_sign_in_embed(reason), ephemeral=True)
                    return

            self.forget_session((user_id, category))
            session = controller.restart(
                category,
                self.data_manager.get_questions(category),
                self.config_manager.get_question_count()
            )
            self.remember_session((user_id, category), session)
            await self.send_question(interaction, user_id, session, authenticated, controller)

        except InsufficientQuestionsError as e:
            logger.warning(f"Quiz restart failed: {e}")
            await self.send_error_response(
                interaction,
                f"Category `{category}` has no questions. Use `/categories` to see what is available.",
                "❌ No Questions"
            )
        except Exception as e:
            logger.error(f"Error in restart command: {e}")
            await self.send_error_response(interaction, "Failed to restart quiz", "❌ Restart Error")

    async def handle_progress(self, interaction: discord.Interaction, category: str):
        """Handle /progress command"""
        try:
            user_id = interaction.user.id
            authenticated = self.is_authenticated(interaction.user)
            controller = self.get_controller(user_id)
            session = self.get_session(user_id, category, controller)

            if session is None:
                await self.send_info_response(
                    interaction,
                    f"You have no saved progress in `{category}`. Use `/quiz {category}` to begin.",
                    "ℹ️ No Progress"
                )
                return

            progress = controller.get_session_progress(session, authenticated)
            embed = discord.Embed(title=f"📊 Progress - {category}", color=0x6699ff)
            embed.add_field(
                name="Position",
                value=f"Answered {progress['answered']}/{progress['total_questions']}",
                inline=True
            )
            embed.add_field(name="Score", value=str(progress['score']), inline=True)
            if progress['remaining_questions'] is not None:
                embed.add_field(
                    name="Guest limits",
                    value=(
                        f"{progress['remaining_questions']} questions left\n"
                        f"{progress['remaining_seconds']} seconds left"
                    ),
                    inline=False
                )
            await interaction.response.send_message(embed=embed, ephemeral=True)

        except Exception as e:
            logger.error(f"Error in progress command: {e}")
            await self.send_error_response(interaction, "Failed to get progress", "❌ Progress Error")

    async def handle_leaderboard(self, interaction: discord.Interaction, category: str, timeframe: str = "all-time"):
        """Handle /leaderboard command"""
        try:
            if timeframe not in TIMEFRAMES:
                await self.send_error_response(interaction, f"Unknown timeframe `{timeframe}`", "❌ Leaderboard Error")
                return

            attempts = self.leaderboard.get_leaderboard(category, timeframe=timeframe)
            embed = discord.Embed(
                title=f"🏆 Top Devotees - {category}",
                description=f"Timeframe: {timeframe}",
                color=0xffd700
            )
            if attempts:
                embed.add_field(
                    name="Rankings",
                    value="\n".join(
                        f"**{rank}.** {attempt.display_name} - {attempt.score}/{attempt.total}"
                        for rank, attempt in enumerate(attempts, start=1)
                    ),
                    inline=False
                )
            else:
                embed.add_field(name="Rankings", value="No scores yet. Be the first!", inline=False)
            await interaction.response.send_message(embed=embed)

        except Exception as e:
            logger.error(f"Error in leaderboard command: {e}")
            await self.send_error_response(interaction, "Failed to load leaderboard", "❌ Leaderboard Error")

    # Quiz flow

    async def send_question(
        self,
        interaction: discord.Interaction,
        user_id: int,
        session: QuizSession,
        authenticated: bool,
        controller: QuizController,
        resumed: bool = False
    ):
        """Post the session's current question with one button per option."""
        embed = self.build_question_embed(session, authenticated, controller)
        if resumed:
            embed.set_author(name="Resuming your quiz")
        view = QuestionView(self, user_id, session)

        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, view=view, ephemeral=True)
        else:
            await interaction.response.send_message(embed=embed, view=view, ephemeral=True)

    async def handle_answer(
        self,
        interaction: discord.Interaction,
        owner_id: int,
        category_id: str,
        question_id: str,
        selected_index: int
    ):
        """Handle an option button press."""
        try:
            if interaction.user.id != owner_id:
                await self.send_warning_response(interaction, "This quiz belongs to someone else.", "⚠️ Not Your Quiz")
                return

            authenticated = self.is_authenticated(interaction.user)
            controller = self.get_controller(owner_id)
            session = self.get_session(owner_id, category_id, controller)

            if session is None:
                await self.send_info_response(
                    interaction,
                    f"This quiz has expired. Use `/quiz {category_id}` to start again.",
                    "ℹ️ Quiz Expired"
                )
                return

            reason = controller.gate_reason(session, authenticated)
            if reason:
                await interaction.response.edit_message(embed=self.build_sign_in_embed(reason), view=None)
                return

            try:
                result = controller.answer(session, question_id, selected_index, authenticated)
            except InvalidTransitionError as e:
                logger.info(f"Rejected answer from {owner_id}: {e}")
                await self.send_warning_response(
                    interaction,
                    "That question has already been answered.",
                    "⚠️ Already Answered"
                )
                return
            except InvalidAnswerError as e:
                logger.info(f"Rejected answer from {owner_id}: {e}")
                await self.send_warning_response(
                    interaction,
                    "That option is not available.",
                    "⚠️ Invalid Option"
                )
                return

            self.remember_session((owner_id, category_id), result.session)
            await interaction.response.edit_message(embed=self.build_answer_embed(session, result), view=None)

            if result.session.is_complete:
                await self.finish_quiz(interaction, owner_id, result.session, authenticated, controller)
            elif result.gated:
                await interaction.followup.send(embed=self.build_sign_in_embed(result.gate_reason), ephemeral=True)
            else:
                await self.send_question(interaction, owner_id, result.session, authenticated, controller)

        except discord.HTTPException as e:
            logger.error(f"Discord API error while answering: {e}")
        except Exception as e:
            logger.error(f"Error handling answer: {e}")
            await self.send_error_response(interaction, "Failed to record your answer", "❌ Answer Error")

    def build_answer_embed(self, previous: QuizSession, result) -> discord.Embed:
        question = previous.current_question
        correct = question.options[result.correct_answer_index]
        if result.is_correct:
            embed = discord.Embed(title="✅ Correct!", description=question.question_text, color=0x00ff00)
        else:
            embed = discord.Embed(title="❌ Not quite", description=question.question_text, color=0xff0000)
        embed.add_field(name="Answer", value=correct, inline=False)
        if question.explanation:
            embed.add_field(name="Explanation", value=question.explanation, inline=False)
        embed.set_footer(text=f"Score: {result.session.score}/{result.session.current_index}")
        return embed

    async def finish_quiz(
        self,
        interaction: discord.Interaction,
        user_id: int,
        session: QuizSession,
        authenticated: bool,
        controller: QuizController
    ):
        """Complete the session, record it for signed-in participants and show the summary."""
        summary = controller.complete(session)
        self.forget_session((user_id, session.category_id))

        recorded = False
        if authenticated:
            self.leaderboard.record_attempt(QuizAttempt(
                user_id=str(user_id),
                display_name=getattr(interaction.user, 'display_name', str(user_id)),
                category_id=summary.category_id,
                score=summary.score,
                total=summary.total,
                completed_at=self.clock()
            ))
            recorded = True

        await interaction.followup.send(embed=self.build_summary_embed(summary, recorded), ephemeral=True)

    # Responses

    async def _send_embed(self, interaction: discord.Interaction, embed: discord.Embed):
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=True)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=True)

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        try:
            embed = discord.Embed(title=title, description=message, color=0xff0000)
            embed.set_footer(text="If this error persists, try using /help for available commands")
            await self._send_embed(interaction, embed)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        try:
            await self._send_embed(interaction, discord.Embed(title=title, description=message, color=0x6699ff))
        except discord.HTTPException:
            logger.error("Failed to send info response to user")

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        try:
            await self._send_embed(interaction, discord.Embed(title=title, description=message, color=0xffaa00))
        except discord.HTTPException:
            logger.error("Failed to send warning response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = DharmaQuizBot(config)

    try:
        logger.info("Starting Dharma Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
