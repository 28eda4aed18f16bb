from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter (fast, research digest and synthesis models all route through it)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "google/gemini-2.5-flash"
    fast_model: str = ""  # internal-intelligence fast provider
    research_model: str = ""  # web digest
    synthesis_model: str = ""  # reasoning provider for hybrid + section synthesis
    decomposition_model: str = ""  # optional override for query decomposition only

    # Web search
    search_provider: str = "tavily"  # tavily | brave
    tavily_api_key: str = ""
    brave_api_key: str = ""
    search_fallback_to_tavily: bool = True
    search_max_results: int = 6

    # Internal-intelligence endpoint
    internal_api_url: str = ""
    internal_api_key: str = ""

    # Timeouts (seconds)
    fast_timeout_s: float = 60.0
    web_timeout_s: float = 30.0
    intake_llm_timeout_s: float = 10.0
    synthesis_timeout_s: float = 120.0
    deep_research_timeout_s: float = 180.0

    # Deep research limits
    research_concurrency: int = 3
    section_concurrency: int = 2
    max_regen_calls: int = 2
    max_research_agents: int = 8
    agent_dedup_threshold: float = 0.85
    insight_stream_limit: int = 50
    progress_throttle_ms: int = 300
    heartbeat_interval_s: float = 5.0

    # Conversation
    history_window: int = 6
    max_sessions: int = 1000

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    @property
    def internal_configured(self) -> bool:
        return bool(self.openrouter_api_key.strip())

    @property
    def web_configured(self) -> bool:
        provider = self.search_provider.lower().strip()
        if provider == "brave":
            return bool(self.brave_api_key.strip()) or (
                self.search_fallback_to_tavily and bool(self.tavily_api_key.strip())
            )
        return bool(self.tavily_api_key.strip())

    @property
    def reasoning_configured(self) -> bool:
        return bool(self.openrouter_api_key.strip())

    @property
    def intel_api_configured(self) -> bool:
        return bool(self.internal_api_url.strip())


settings = Settings()
