import discord
from discord.ext import commands
import logging
import asyncio
from typing import Dict, Optional, Set
from pathlib import Path

from .analytics import LoggingAnalyticsSink
from .auth import InMemoryAuthProvider
from .config_manager import ConfigManager
from .data_manager import DataManager
from .errors import AuthRequiredError, PersistenceError, QuizValidationError
from .models import Phase, Question, QuizSettings, Session
from .score_store import JsonScoreStore
from .session_controller import SessionController, SessionListener

logger = logging.getLogger(__name__)


def setup_logging(log_directory: str = "logs"):
    """Set up error-specific logging and quiet the discord.py loggers."""
    logs_dir = Path(log_directory)
    logs_dir.mkdir(exist_ok=True)

    error_handler = logging.FileHandler(logs_dir / "errors.log", encoding='utf-8')
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logging.getLogger().addHandler(error_handler)

    logging.getLogger('discord').setLevel(logging.WARNING)  # Reduce discord.py noise
    logging.getLogger('discord.http').setLevel(logging.WARNING)

    return logger


def build_question_embed(
    quiz_title: str,
    question: Question,
    question_number: int,
    total_questions: int,
    remaining_time: int
) -> discord.Embed:
    """Build the embed for a question, colored by the time left."""
    if remaining_time > 10:
        color = 0x00ff00  # Green
        timer_emoji = "⏱️"
    elif remaining_time > 5:
        color = 0xff6600  # Orange
        timer_emoji = "⚠️"
    else:
        color = 0xff0000  # Red
        timer_emoji = "🚨"

    embed = discord.Embed(
        title=f"🎯 Question {question_number}/{total_questions}",
        description=question.prompt,
        color=color
    )
    embed.add_field(
        name=f"{timer_emoji} Time Left",
        value=f"{remaining_time} second{'s' if remaining_time != 1 else ''}",
        inline=True
    )
    embed.add_field(name="📚 Quiz", value=quiz_title, inline=True)
    embed.set_footer(text="Pick an option, then press Next")
    return embed


def build_completion_embed(quiz_title: str, score: int, total_questions: int) -> discord.Embed:
    """Build the final score embed."""
    ratio = score / total_questions if total_questions else 0
    embed = discord.Embed(
        title="🎉 Quiz Complete!",
        description=f"**{quiz_title}**",
        color=0x00ff00 if ratio > 0.5 else 0xffaa00
    )
    embed.add_field(
        name="🏆 Your Score",
        value=f"{score} / {total_questions}",
        inline=False
    )
    embed.set_footer(text="Great job!" if ratio > 0.5 else "Better luck next time!")
    return embed


class QuestionView(discord.ui.View):
    """One button per option plus a Next button for the current question."""

    def __init__(self, bot: "QuizBot", channel_id: int, question: Question, question_index: int):
        super().__init__(timeout=None)
        self.bot = bot
        self.channel_id = channel_id
        self.question_index = question_index

        for position, option in enumerate(question.options):
            button = discord.ui.Button(
                label=option[:80],
                style=discord.ButtonStyle.secondary,
                row=min(position // 5, 3)
            )
            button.callback = self._make_option_callback(option)
            self.add_item(button)

        next_button = discord.ui.Button(label="Next", style=discord.ButtonStyle.primary, row=4)
        next_button.callback = self._next_callback
        self.add_item(next_button)

    def _make_option_callback(self, option: str):
        async def callback(interaction: discord.Interaction):
            await self.bot.handle_select(interaction, self.channel_id, self.question_index, option)
        return callback

    async def _next_callback(self, interaction: discord.Interaction):
        await self.bot.handle_next(interaction, self.channel_id, self.question_index)


class CompletedView(discord.ui.View):
    """Offers to retry a completed quiz."""

    def __init__(self, bot: "QuizBot", channel_id: int):
        super().__init__(timeout=None)
        self.bot = bot
        self.channel_id = channel_id

        retry_button = discord.ui.Button(label="Try again", style=discord.ButtonStyle.success)
        retry_button.callback = self._retry_callback
        self.add_item(retry_button)

    async def _retry_callback(self, interaction: discord.Interaction):
        await self.bot.handle_retry(interaction)


class DiscordSessionPresenter(SessionListener):
    """Renders a channel's quiz session as Discord messages."""

    def __init__(self, bot: "QuizBot", channel: discord.abc.Messageable, channel_id: int, owner_id: int):
        self.bot = bot
        self.channel = channel
        self.channel_id = channel_id
        self.owner_id = owner_id
        self.message: Optional[discord.Message] = None
        self._message_index: Optional[int] = None
        self._tasks: Set[asyncio.Task] = set()

    def _schedule(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def on_question(self, session: Session) -> None:
        self._schedule(self._send_question(
            session.quiz.title,
            session.current_question,
            session.current_question_index,
            session.total_questions,
            session.remaining_seconds
        ))

    def on_tick(self, session: Session) -> None:
        remaining = session.remaining_seconds
        # Discord rate limits message edits; refresh every 5s and during the last 5s.
        if remaining % 5 == 0 or remaining <= 5:
            self._schedule(self._update_countdown(
                session.quiz.title,
                session.current_question,
                session.current_question_index,
                session.total_questions,
                remaining
            ))

    def on_completed(self, session: Session) -> None:
        self._schedule(self._send_completion(session.quiz.title, session.score, session.total_questions))

    def on_failed(self, session: Session, error: Exception) -> None:
        self._schedule(self._send_embed(discord.Embed(
            title="❌ Quiz Unavailable",
            description=f"{error}\n\nUse `/quizzes` to see available quizzes and `/start` to try again.",
            color=0xff0000
        )))

    def on_error(self, error: Exception) -> None:
        if isinstance(error, AuthRequiredError):
            description = "You must be logged in to save your score. Your result is still shown above."
        elif isinstance(error, PersistenceError):
            description = "Failed to save score. Please try again."
        else:
            description = str(error)
        self._schedule(self._send_embed(discord.Embed(
            title="⚠️ Score Not Saved",
            description=description,
            color=0xffaa00
        )))

    async def _send_embed(self, embed: discord.Embed) -> None:
        try:
            await self.channel.send(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to send message to channel {self.channel_id}: {e}")

    async def _send_question(
        self,
        quiz_title: str,
        question: Question,
        question_index: int,
        total_questions: int,
        remaining_time: int
    ) -> None:
        try:
            embed = build_question_embed(quiz_title, question, question_index + 1, total_questions, remaining_time)
            view = QuestionView(self.bot, self.channel_id, question, question_index)
            self.message = await self.channel.send(embed=embed, view=view)
            self._message_index = question_index
        except (ValueError, discord.HTTPException) as e:
            # discord.py raises ValueError for views and embeds it cannot lay out
            logger.error(f"Failed to present question {question_index + 1} in channel {self.channel_id}: {e}")
            self.bot.fail_presentation(self.channel_id, question_index, e)

    async def _update_countdown(
        self,
        quiz_title: str,
        question: Question,
        question_index: int,
        total_questions: int,
        remaining_time: int
    ) -> None:
        if self.message is None or self._message_index != question_index:
            return
        embed = build_question_embed(quiz_title, question, question_index + 1, total_questions, remaining_time)
        try:
            await self.message.edit(embed=embed)
        except discord.HTTPException as e:
            # Don't raise to avoid breaking the countdown
            logger.warning(f"Failed to update timer in channel {self.channel_id}: {e}")

    async def _send_completion(self, quiz_title: str, score: int, total_questions: int) -> None:
        embed = build_completion_embed(quiz_title, score, total_questions)
        try:
            await self.channel.send(embed=embed, view=CompletedView(self.bot, self.channel_id))
        except discord.HTTPException as e:
            logger.error(f"Failed to send quiz summary to channel {self.channel_id}: {e}")


class QuizBot(commands.Bot):
    """Discord bot for taking timed quizzes"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # Fallback prefix, mainly using slash commands
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = None
        self.score_store: Optional[JsonScoreStore] = None
        self.analytics = LoggingAnalyticsSink()
        self.tick_interval = 1.0

        # Controllers and presenters mapped by channel ID
        self.controllers: Dict[int, SessionController] = {}
        self.presenters: Dict[int, DiscordSessionPresenter] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        logger.info("Setting up bot components...")

        self.config_manager = ConfigManager()
        if self.app_config:
            self.apply_configuration()

        self.data_manager = DataManager(self.config_manager.get_quiz_directory())
        self.score_store = JsonScoreStore(self.config_manager.get_scores_file())
        self.load_quiz_data()

        self.setup_commands()
        logger.info("Bot setup completed successfully")

    def apply_configuration(self):
        """Apply settings from configuration file to the config manager."""
        quiz_config = self.app_config.get('quiz', {})

        results = [
            self.config_manager.set_quiz_directory(quiz_config.get('quiz_directory', './quizzes/')),
            self.config_manager.set_scores_file(quiz_config.get('scores_file', './scores.json')),
            self.config_manager.set_random_order(quiz_config.get('default_random_order', False)),
            self.config_manager.set_timer_duration(quiz_config.get('default_timer_duration', 30)),
        ]
        default_question_count = quiz_config.get('default_question_count')
        if default_question_count is not None:
            results.append(self.config_manager.set_question_count(default_question_count))

        # Invalid values keep their defaults
        failures = [result['error'] for result in results if not result['success']]
        if failures:
            logger.warning(f"Ignored {len(failures)} invalid configuration values: {'; '.join(failures)}")
        else:
            logger.info("Configuration applied successfully")

    def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="quizzes", description="List the quizzes you can take")
        async def quizzes_command(interaction: discord.Interaction):
            await self.handle_quizzes(interaction)

        @self.tree.command(name="refresh", description="Reload quiz files from disk")
        async def refresh_command(interaction: discord.Interaction):
            await self.handle_refresh(interaction)

        @self.tree.command(name="start", description="Start a quiz")
        async def start_command(interaction: discord.Interaction, quiz_id: str):
            await self.handle_start(interaction, quiz_id)

        @self.tree.command(name="retry", description="Take the quiz you just finished again")
        async def retry_command(interaction: discord.Interaction):
            await self.handle_retry(interaction)

        @self.tree.command(name="stop", description="Stop the current quiz session")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="status", description="Show current quiz status and progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="scores", description="Show your saved quiz scores")
        async def scores_command(interaction: discord.Interaction):
            await self.handle_scores(interaction)

        @self.tree.command(name="set_timer", description="Set the time limit for each question (5-300 seconds)")
        async def set_timer_command(interaction: discord.Interaction, seconds: int):
            await self.handle_set_timer(interaction, seconds)

        @self.tree.command(name="set_questions", description="Set the number of questions for the next quiz")
        async def set_questions_command(interaction: discord.Interaction, number: int):
            await self.handle_set_questions(interaction, number)

        @self.tree.command(name="random_order", description="Toggle between random and sequential question order")
        async def random_order_command(interaction: discord.Interaction):
            await self.handle_random_order(interaction)

        logger.info("Slash commands registered successfully")

    def load_quiz_data(self):
        """Load quiz files from the quizzes directory"""
        loaded_quizzes = self.data_manager.load_quiz_files()
        logger.info(f"Loaded {len(loaded_quizzes)} quizzes from {self.data_manager.quiz_directory}")

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

    async def close(self):
        for channel_id in list(self.controllers):
            self.end_session(channel_id)
        await super().close()

    def create_session(
        self,
        channel: discord.abc.Messageable,
        channel_id: int,
        owner_id: int,
        settings: QuizSettings
    ) -> SessionController:
        """Create the controller and presenter for a channel, replacing any previous one."""
        self.end_session(channel_id)

        presenter = DiscordSessionPresenter(self, channel, channel_id, owner_id)
        controller = SessionController(
            auth_provider=InMemoryAuthProvider(owner_id),
            result_reporter=self.score_store,
            analytics_sink=self.analytics,
            settings=settings,
            listener=presenter,
            tick_interval=self.tick_interval,
            session_id=str(channel_id)
        )
        self.controllers[channel_id] = controller
        self.presenters[channel_id] = presenter
        return controller

    def end_session(self, channel_id: int) -> bool:
        """Tear down the session of a channel. Returns False if there was none."""
        controller = self.controllers.pop(channel_id, None)
        self.presenters.pop(channel_id, None)
        if controller is None:
            return False
        controller.close()
        return True

    def fail_presentation(self, channel_id: int, question_index: int, error: Exception) -> bool:
        """Fail the channel's session if the question at question_index could not be shown."""
        controller = self.controllers.get(channel_id)
        if controller is None or controller.phase is not Phase.PRESENTING:
            return False
        if controller.session.current_question_index != question_index:
            return False
        controller.fail(QuizValidationError(f"Question {question_index + 1} could not be displayed: {error}"))
        return True

    async def _check_owner(self, interaction: discord.Interaction, channel_id: int) -> Optional[SessionController]:
        controller = self.controllers.get(channel_id)
        presenter = self.presenters.get(channel_id)
        if controller is None or presenter is None:
            await self.send_warning_response(interaction, "There is no quiz running in this channel.")
            return None
        if interaction.user.id != presenter.owner_id:
            await self.send_warning_response(interaction, "Only the person who started this quiz can answer it.")
            return None
        return controller

    async def handle_select(self, interaction: discord.Interaction, channel_id: int, question_index: int, option: str):
        """Handle an option button press"""
        controller = await self._check_owner(interaction, channel_id)
        if controller is None:
            return

        session = controller.session
        if session.phase is not Phase.PRESENTING or session.current_question_index != question_index:
            await self.send_warning_response(interaction, "This question is no longer active.")
            return

        controller.select_option(option)
        await interaction.response.send_message(f"Selected: **{option}**", ephemeral=True)

    async def handle_next(self, interaction: discord.Interaction, channel_id: int, question_index: int):
        """Handle the Next button"""
        controller = await self._check_owner(interaction, channel_id)
        if controller is None:
            return

        session = controller.session
        if session.phase is not Phase.PRESENTING or session.current_question_index != question_index:
            await self.send_warning_response(interaction, "This question is no longer active.")
            return

        controller.advance()
        await interaction.response.defer()

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        help_embed = discord.Embed(
            title="🎯 Quiz Bot Commands",
            description="Take timed multiple-choice quizzes",
            color=0x00ff00
        )
        help_embed.add_field(
            name="🎮 Quiz Commands",
            value=(
                "`/quizzes` - List available quizzes\n"
                "`/refresh` - Reload quiz files from disk\n"
                "`/start <quiz_id>` - Start a quiz\n"
                "`/retry` - Take the quiz you just finished again\n"
                "`/stop` - Stop the current quiz session\n"
                "`/status` - Show current quiz status and progress\n"
                "`/scores` - Show your saved scores"
            ),
            inline=False
        )
        help_embed.add_field(
            name="📋 Settings",
            value=(
                "`/set_timer <seconds>` - Time limit for each question (5-300 s)\n"
                "`/set_questions <number>` - Number of questions for the next quiz\n"
                "`/random_order` - Toggle random question order"
            ),
            inline=False
        )
        help_embed.add_field(
            name="⚙️ Current Settings",
            value=f"```\n{self.config_manager.get_settings_summary()}\n```",
            inline=False
        )
        await interaction.response.send_message(embed=help_embed, ephemeral=True)

    async def handle_quizzes(self, interaction: discord.Interaction):
        """Handle /quizzes command"""
        loading_summary = self.data_manager.get_loading_summary()
        quiz_ids = loading_summary['available_quizzes']

        if not quiz_ids:
            await self.send_error_response(interaction, "No quizzes available.", "❌ No Quizzes Available")
            return

        embed = discord.Embed(title="📚 Available Quizzes", color=0x0099ff)
        for quiz_id in quiz_ids:
            quiz = self.data_manager.get_quiz(quiz_id)
            embed.add_field(
                name=quiz.title,
                value=f"`/start {quiz_id}` - {quiz.total_questions} questions",
                inline=False
            )
        if loading_summary['fallback_active']:
            embed.set_footer(text="⚠️ Quiz files could not be loaded; only a fallback quiz is available.")
        await interaction.response.send_message(embed=embed)

    async def handle_refresh(self, interaction: discord.Interaction):
        """Handle /refresh command"""
        self.data_manager.reload()
        loading_summary = self.data_manager.get_loading_summary()
        logger.info(f"Quiz data refreshed: {loading_summary['total_quizzes']} quizzes, {loading_summary['error_count']} errors")

        message = f"Loaded {loading_summary['total_quizzes']} quizzes from `{loading_summary['quiz_directory']}`."
        if loading_summary['has_errors']:
            message += "\n\n" + "\n".join(f"• {error}" for error in loading_summary['errors'][:5])
            await self.send_warning_response(interaction, message, "⚠️ Quizzes Refreshed With Errors")
            return
        await self.send_info_response(interaction, message, "🔄 Quizzes Refreshed")

    async def handle_start(self, interaction: discord.Interaction, quiz_id: str):
        """Handle /start command"""
        channel_id = interaction.channel_id

        existing = self.controllers.get(channel_id)
        if existing is not None and existing.phase in (Phase.LOADING, Phase.PRESENTING):
            await self.send_warning_response(
                interaction,
                "A quiz is already running in this channel. Use `/stop` to end it first."
            )
            return

        if not self.data_manager.quiz_exists(quiz_id):
            available = ", ".join(f"`{name}`" for name in self.data_manager.get_available_quizzes()) or "none"
            await self.send_error_response(
                interaction,
                f"Quiz `{quiz_id}` was not found. Available quizzes: {available}",
                "❌ Quiz Not Found"
            )
            return

        settings = self.config_manager.get_quiz_settings()
        controller = self.create_session(interaction.channel, channel_id, interaction.user.id, settings)

        embed = discord.Embed(
            title="🎯 Quiz Starting!",
            description=f"**{self.data_manager.get_quiz(quiz_id).title}**",
            color=0x00ff00
        )
        embed.add_field(
            name="📊 Quiz Details",
            value=(
                f"Order: {'🔀 Random' if settings.random_order else '📋 Sequential'}\n"
                f"Timer: {settings.timer_duration} seconds per question"
            ),
            inline=False
        )
        embed.set_footer(text="Get ready for the first question!")
        await interaction.response.send_message(embed=embed)

        controller.load(quiz_id, self.data_manager)

    async def handle_retry(self, interaction: discord.Interaction):
        """Handle /retry command and the Try again button"""
        controller = await self._check_owner(interaction, interaction.channel_id)
        if controller is None:
            return

        if not controller.retry():
            await self.send_warning_response(interaction, "There is no finished quiz to retry in this channel.")
            return

        await self.send_info_response(interaction, "Starting over from the first question.", "🔁 Try Again")

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        channel_id = interaction.channel_id
        presenter = self.presenters.get(channel_id)
        if presenter is not None and interaction.user.id != presenter.owner_id:
            await self.send_warning_response(interaction, "Only the person who started this quiz can stop it.")
            return

        if not self.end_session(channel_id):
            await self.send_warning_response(interaction, "There is no quiz running in this channel.")
            return

        await self.send_info_response(interaction, "The quiz session has been stopped.", "⏹️ Quiz Stopped")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        controller = self.controllers.get(interaction.channel_id)
        if controller is None:
            await self.send_info_response(interaction, "No quiz is running in this channel.", "ℹ️ Status")
            return

        progress = controller.get_progress()
        embed = discord.Embed(title="📊 Quiz Status", color=0x0099ff)
        embed.add_field(name="Quiz", value=progress['quiz_title'] or progress['quiz_id'] or "-", inline=True)
        embed.add_field(name="Phase", value=progress['phase'].capitalize(), inline=True)
        if progress['phase'] == Phase.PRESENTING.value:
            embed.add_field(
                name="Progress",
                value=f"Question {progress['current_question']}/{progress['total_questions']}",
                inline=False
            )
            embed.add_field(name="Time Left", value=f"{progress['remaining_seconds']}s", inline=True)
        embed.add_field(name="Score", value=str(progress['score']), inline=True)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_scores(self, interaction: discord.Interaction):
        """Handle /scores command"""
        try:
            records = self.score_store.get_user_scores(str(interaction.user.id))
        except PersistenceError as e:
            logger.error(f"Failed to fetch scores for user {interaction.user.id}: {e}")
            await self.send_error_response(interaction, "Failed to fetch scores. Please try again.")
            return

        if not records:
            await self.send_info_response(interaction, "No scores found.", "🏆 Your Scores")
            return

        embed = discord.Embed(title="🏆 Your Scores", color=0x0099ff)
        for record in records:
            embed.add_field(
                name=record.quiz_title,
                value=f"{record.final_score} / {record.total_questions}\n{record.completed_at[:19].replace('T', ' ')}",
                inline=False
            )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_set_timer(self, interaction: discord.Interaction, seconds: int):
        """Handle /set_timer command"""
        result = self.config_manager.set_timer_duration(seconds)
        await self._send_config_result(interaction, result)

    async def handle_set_questions(self, interaction: discord.Interaction, number: int):
        """Handle /set_questions command"""
        result = self.config_manager.set_question_count(number)
        await self._send_config_result(interaction, result)

    async def handle_random_order(self, interaction: discord.Interaction):
        """Handle /random_order command"""
        result = self.config_manager.toggle_random_order()
        await self._send_config_result(interaction, result)

    async def _send_config_result(self, interaction: discord.Interaction, result: Dict):
        if result['success']:
            await self.send_info_response(interaction, result['user_message'], "⚙️ Settings Updated")
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Invalid Setting")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send error response to user with fallback handling"""
        await self._send_response(interaction, message, title, 0xff0000)

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send informational response to user"""
        await self._send_response(interaction, message, title, 0x0099ff)

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send warning response to user"""
        await self._send_response(interaction, message, title, 0xffaa00)

    async def _send_response(self, interaction: discord.Interaction, message: str, title: str, color: int):
        embed = discord.Embed(title=title, description=message, color=color)
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Failed to send response embed: {e}")
            # Fallback to simple message
            try:
                simple_message = f"{title}: {message}"
                if interaction.response.is_done():
                    await interaction.followup.send(simple_message, ephemeral=True)
                else:
                    await interaction.response.send_message(simple_message, ephemeral=True)
            except discord.HTTPException:
                logger.error("Failed to send fallback response message")


async def run_bot(token=None, config=None):
    """Run the Discord bot"""
    log_directory = (config or {}).get('logging', {}).get('log_directory', './logs/')
    setup_logging(log_directory)

    bot = QuizBot(config)
    async with bot:
        await bot.start(token)
