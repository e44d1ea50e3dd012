"""
AI-powered coaching for a lifecycle run using Google Gemini.
Turns the year-by-year history of a run into a short natural-language review.
Every failure degrades to a canned message; nothing here touches game state.
"""
import json
from typing import Any, Dict, List, Optional, Sequence

import google.generativeai as genai

from finance import CAREER_PROFILES, CareerType
from simulation import SimulationSummary, YearRecord

MIN_RECORDS_FOR_ANALYSIS = 5

NOT_ENOUGH_DATA_MESSAGE = "Keep playing to gather enough data for AI analysis!"
FALLBACK_MESSAGE = "The analyzer is currently recalibrating. Try again after a few more years!"


class APIError:
    """Common API error types and messages"""
    UNAVAILABLE = "unavailable"
    RATE_LIMIT = "rate_limit"
    INVALID_KEY = "invalid_key"
    QUOTA_EXCEEDED = "quota_exceeded"
    NETWORK_ERROR = "network_error"
    EMPTY_RESPONSE = "empty_response"
    UNKNOWN_ERROR = "unknown_error"

    @staticmethod
    def get_user_message(error_type: str) -> str:
        """Get user-friendly error messages"""
        messages = {
            APIError.UNAVAILABLE: "AI analysis is not configured. Add a Gemini API key to enable it.",
            APIError.RATE_LIMIT: "Rate limit exceeded. Please wait a moment and try again.",
            APIError.INVALID_KEY: "Invalid API key. Please check your Gemini API key.",
            APIError.QUOTA_EXCEEDED: "Daily quota exceeded. Try again tomorrow.",
            APIError.NETWORK_ERROR: "Network error. Please check your internet connection.",
            APIError.EMPTY_RESPONSE: "The model returned an empty response.",
            APIError.UNKNOWN_ERROR: "Unexpected error occurred. Using offline analysis instead."
        }
        return messages.get(error_type, messages[APIError.UNKNOWN_ERROR])


class LifecycleAnalyzer:
    """AI coach reviewing a player's saving and investing decisions"""

    AVAILABLE_MODELS = {
        'gemini-2.5-pro': 'Gemini 2.5 Pro (Most Powerful)',
        'gemini-2.5-flash': 'Gemini 2.5 Flash (Fast & Efficient)',
        'gemini-2.0-flash': 'Gemini 2.0 Flash',
        'gemini-2.0-flash-lite': 'Gemini 2.0 Flash-Lite (Lightweight)',
    }

    def __init__(self, api_key: Optional[str] = None, model_name: str = 'gemini-2.5-flash'):
        """
        Initialize the analyzer.

        Args:
            api_key: Google API key for Gemini. If None, analysis will be disabled.
            model_name: Name of the Gemini model to use.
        """
        self.api_key = api_key
        self.model_name = model_name
        self.model = None
        self.is_available = api_key is not None
        self.last_error: Optional[str] = None

        if self.is_available:
            try:
                genai.configure(api_key=api_key)
                self.model = genai.GenerativeModel(model_name)
            except Exception as e:
                self.is_available = False
                print(f"Warning: Failed to initialize Gemini model '{model_name}': {e}")

    def analyze_run(self, history: Sequence[YearRecord],
                    summary: Optional[SimulationSummary] = None,
                    career_type: Optional[CareerType] = None) -> str:
        """
        Review a run and return coaching text.

        Args:
            history: Year records of the run, oldest first
            summary: Summary of the finished run, if it has ended
            career_type: Career of the run when no summary is available

        Returns:
            Analysis text, or a canned message when there is too little data
            or the model cannot be reached
        """
        self.last_error = None
        if len(history) < MIN_RECORDS_FOR_ANALYSIS:
            return NOT_ENOUGH_DATA_MESSAGE

        if not self.is_available:
            self.last_error = APIError.UNAVAILABLE
            return FALLBACK_MESSAGE

        try:
            analysis_data = self._extract_analysis_data(history, summary, career_type)
            prompt = self._create_analysis_prompt(analysis_data)
            response = self.model.generate_content(prompt)

            if not response or not response.text:
                self.last_error = APIError.EMPTY_RESPONSE
                return FALLBACK_MESSAGE
            return response.text.strip()

        except Exception as e:
            self.last_error = self._classify_error(e)
            print(f"Warning: Error in lifecycle analysis ({self.last_error}): {e}")
            return FALLBACK_MESSAGE

    def _classify_error(self, error: Exception) -> str:
        """Classify API errors into user-friendly categories"""
        error_str = str(error).lower()

        if "rate limit" in error_str or "429" in error_str:
            return APIError.RATE_LIMIT
        elif "api key" in error_str or "401" in error_str or "403" in error_str:
            return APIError.INVALID_KEY
        elif "quota" in error_str:
            return APIError.QUOTA_EXCEEDED
        elif "network" in error_str or "connection" in error_str or "timeout" in error_str:
            return APIError.NETWORK_ERROR
        else:
            return APIError.UNKNOWN_ERROR

    def _extract_analysis_data(self, history: Sequence[YearRecord],
                               summary: Optional[SimulationSummary],
                               career_type: Optional[CareerType]) -> Dict[str, Any]:
        """Compact, JSON-friendly view of the run for the prompt"""
        if summary is not None:
            career_type = summary.career_type

        career = None
        if career_type is not None:
            profile = CAREER_PROFILES[CareerType(career_type)]
            career = {
                'type': CareerType(career_type).value,
                'title': profile.title,
                'wage_growth': profile.wage_growth,
                'wage_volatility': profile.volatility,
                'market_correlation': profile.market_correlation,
            }

        years = [
            {
                'age': r.age,
                'wealth': round(r.wealth),
                'income': round(r.income),
                'savings_rate': round(r.savings / (r.savings + r.consumption), 3)
                if r.savings + r.consumption else None,
                'portfolio_return': round(r.portfolio_return, 4),
                'utility': round(r.utility, 4),
                'event': r.event,
            }
            for r in history
        ]

        outcome = None
        if summary is not None:
            outcome = {
                'final_wealth': round(summary.final_wealth),
                'score': round(summary.score, 2),
                'age_reached': summary.age_reached,
                'was_ruin': summary.was_ruin,
            }

        return {'career': career, 'years': years, 'outcome': outcome}

    def _create_analysis_prompt(self, data: Dict[str, Any]) -> str:
        """Create coaching prompt from the extracted run data"""
        return f"""
Analyze the following player's decisions in a 40-year lifecycle investing game.
Each year they choose a savings rate and a stock/bond/cash allocation; wages follow
their career profile and may move with the stock market; health and employment
shocks occasionally cost part of a year's income. Their score rewards consumption
that stays at or above their first-year level (log utility).

Look for specific patterns like:
1. Ignoring human capital (holding equity risk that duplicates a market-linked career).
2. Under-saving early or over-saving at the expense of consumption.
3. Reacting to recent returns (chasing gains or selling after losses).
4. Fragility to shocks (too little financial buffer).

Career (JSON format): {json.dumps(data['career'])}
History (JSON format): {json.dumps(data['years'])}
Outcome (JSON format): {json.dumps(data['outcome'])}

Provide a concise, insightful analysis (max 150 words) that educates the player on their
specific patterns. Use a supportive but scientific tone.
"""

    @staticmethod
    def get_available_models() -> Dict[str, str]:
        """Get dictionary of available models for selection"""
        return LifecycleAnalyzer.AVAILABLE_MODELS.copy()


def create_mock_analysis(summary: SimulationSummary) -> str:
    """Rule-based review used when Gemini is not available"""
    profile = CAREER_PROFILES[CareerType(summary.career_type)]
    lines: List[str] = []

    if summary.was_ruin:
        lines.append(f"Your savings ran out at age {summary.age_reached}.")
        lines.append("A larger cash or bond buffer would have absorbed the shocks that wiped you out.")
    else:
        lines.append(f"You reached retirement with ${summary.final_wealth:,.0f}.")

    if profile.market_correlation >= 0.5:
        lines.append("Your wages rise and fall with the stock market, so your human capital already "
                     "behaves like equity; a lower stock allocation diversifies that risk.")
    else:
        lines.append("Your wages behave like a bond, so you can afford to hold more equity in your portfolio.")

    if summary.score <= 0:
        lines.append("Consumption fell below its starting level too often; smoother saving keeps your score up.")
    else:
        lines.append(f"Your utility score of {summary.score:.1f} reflects consumption above your starting standard.")

    return " ".join(lines)
