"""
Configuration models using Pydantic for type-safe validation.

Every threshold, weight table and reliability table used by the engine
lives here with its documented default:
- SystemConfig: environment, logging
- OrderBookConfig / TapeConfig / CandleConfig: domain scorers
- MTFConfig: multi-timeframe weights and structure classifier
- ConfluenceConfig: merge weights, adjustments, MTF policy, fallback vote
- SignalConfig / TrailingStopConfig: signal construction
- RiskLimitsConfig / EmotionalFilterConfig / SizingConfig: gates
- LevelConfig / BreakoutConfig: support/resistance pipeline
- OnlineModelConfig / SchedulerConfig: runtime services
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ============================================================================
# Enums for Configuration
# ============================================================================

class Environment(str, Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class TradingMode(str, Enum):
    """Signal tightness mode."""
    DEFAULT = "default"
    SCALPING = "scalping"
    FUTURES_25X = "futures25x"


class Sensitivity(str, Enum):
    """Swing detection sensitivity for level detection."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ============================================================================
# System Configuration
# ============================================================================

class SystemConfig(BaseModel):
    """System-wide settings."""

    model_config = ConfigDict(use_enum_values=True)

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment"
    )

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level"
    )

    json_logs: bool = Field(
        default=False,
        description="Emit JSON log records"
    )

    log_file: Optional[str] = Field(
        default=None,
        description="Optional log file path"
    )


# ============================================================================
# Order Book Scorer
# ============================================================================

class OrderBookConfig(BaseModel):
    """Order book scoring thresholds."""

    dom_band_pct: float = Field(default=1.0, gt=0.0, le=10.0, description="Depth-of-market band around mid (%)")
    dom_strong: float = Field(default=0.3, ge=0.0, le=1.0, description="DOM imbalance for +3")
    dom_medium: float = Field(default=0.2, ge=0.0, le=1.0, description="DOM imbalance for +2")
    dom_weak: float = Field(default=0.1, ge=0.0, le=1.0, description="DOM imbalance for +1")

    imbalance_strong: float = Field(default=0.3, ge=0.0, le=1.0, description="Whole-book imbalance for +2")
    imbalance_medium: float = Field(default=0.2, ge=0.0, le=1.0, description="Whole-book imbalance for +1")

    zones_pct: List[float] = Field(
        default_factory=lambda: [0.05, 0.1, 0.2, 0.5, 1.0],
        description="Nested zones around mid (%) scored separately"
    )
    zone_threshold: float = Field(default=0.3, ge=0.0, le=1.0, description="Zone imbalance for +1")

    pressure_levels: int = Field(default=100, ge=1, description="Levels per side used for pressure")
    pressure_decay: float = Field(default=100.0, gt=0.0, description="Exponential distance decay factor")
    pressure_dominance: float = Field(default=0.6, gt=0.5, lt=1.0, description="Pressure share for +2")

    wall_band_pct: float = Field(default=1.0, gt=0.0, description="Wall search band around mid (%)")
    wall_multiplier: float = Field(default=3.0, gt=1.0, description="Wall size vs local average")
    wall_min_levels: int = Field(default=3, ge=1, description="Levels required before walls are searched")

    compression_spread_pct: float = Field(default=0.05, ge=0.0, description="Tight spread for compression bonus (%)")
    compression_dom: float = Field(default=0.15, ge=0.0, le=1.0, description="Minimum |DOM| for compression bonus")

    direction_ratio: float = Field(default=1.3, ge=1.0, description="Stronger side must exceed weaker by this factor")
    min_confidence_pct: float = Field(default=25.0, ge=0.0, le=100.0, description="Minimum bull/bear confidence (%)")

    breakout_band_pct: float = Field(default=0.005, gt=0.0, description="Band around a level for breakout pressure")


# ============================================================================
# Tape Scorer
# ============================================================================

class TapeConfig(BaseModel):
    """Trade tape scoring thresholds."""

    tier_bounds: List[float] = Field(
        default_factory=lambda: [1000.0, 10000.0, 50000.0],
        description="Notional upper bounds of the first three tiers"
    )
    tier_weights: List[float] = Field(
        default_factory=lambda: [1.0, 2.0, 5.0, 10.0],
        description="Weight per notional tier"
    )

    delta_strong: float = Field(default=0.2, ge=0.0, le=1.0, description="Raw delta for +3")
    delta_medium: float = Field(default=0.1, ge=0.0, le=1.0, description="Raw delta for +2")
    weighted_delta: float = Field(default=0.25, ge=0.0, le=1.0, description="Tier-weighted delta for +2")

    cvd_min_trades: int = Field(default=10, ge=2, description="Trades required for CVD divergence")
    cvd_window: int = Field(default=5, ge=1, description="Trades in the first/last CVD windows")
    cvd_price_move: float = Field(default=0.001, ge=0.0, description="Relative price move counted as up/down")
    cvd_score: float = Field(default=4.0, ge=0.0, description="Score for a CVD divergence")

    aggression_share: float = Field(default=0.65, gt=0.5, le=1.0, description="Aggressor share for +2")

    large_trade_notional: float = Field(default=1000.0, ge=0.0, description="Notional counted as large trade")
    large_min_trades: int = Field(default=5, ge=0, description="Large-trade check needs more trades than this")
    large_ratio: float = Field(default=1.3, ge=1.0, description="Large-volume side ratio for +2")

    count_min_trades: int = Field(default=10, ge=0, description="Count check needs more trades than this")
    count_ratio: float = Field(default=1.3, ge=1.0, description="Trade-count ratio for +1")

    recent_min_trades: int = Field(default=10, ge=2, description="Trades required for recent-window delta")

    direction_ratio: float = Field(default=1.3, ge=1.0, description="Stronger side must exceed weaker by this factor")
    min_confidence_pct: float = Field(default=25.0, ge=0.0, le=100.0, description="Minimum bull/bear confidence (%)")

    windows_seconds: Dict[str, int] = Field(
        default_factory=lambda: {"1m": 60, "5m": 300, "15m": 900, "1h": 3600},
        description="Trailing tape windows"
    )
    window_weights: Dict[str, float] = Field(
        default_factory=lambda: {"1m": 0.25, "5m": 0.35, "15m": 0.25, "1h": 0.15},
        description="Weight of each tape window"
    )
    window_min_trades: int = Field(default=5, ge=1, description="Trades required to score a window")
    window_margin: float = Field(default=0.2, ge=0.0, description="Weight margin for a window direction")

    @field_validator('tier_weights')
    @classmethod
    def tier_weights_match_bounds(cls, v, info):
        """Validate there is one more weight than tier bounds."""
        bounds = info.data.get('tier_bounds')
        if bounds is not None and len(v) != len(bounds) + 1:
            raise ValueError('tier_weights must have len(tier_bounds) + 1 entries')
        return v


# ============================================================================
# Candle Scorer
# ============================================================================

DEFAULT_PATTERN_WEIGHTS: Dict[str, Tuple[float, float]] = {
    "bullish_engulfing": (3, 0),
    "bearish_engulfing": (0, 3),
    "morning_star": (3, 0),
    "evening_star": (0, 3),
    "hammer": (2, 0),
    "inverted_hammer": (2, 0),
    "shooting_star": (0, 2),
    "hanging_man": (0, 2),
    "three_white_soldiers": (3, 0),
    "three_black_crows": (0, 3),
    "bull_marubozu": (2, 0),
    "bear_marubozu": (0, 2),
    "dragonfly_doji": (2, 0),
    "gravestone_doji": (0, 2),
    "tweezer_bottoms": (2, 0),
    "tweezer_tops": (0, 2),
    "bullish_harami": (1, 0),
    "bearish_harami": (0, 1),
    "piercing_line": (2, 0),
    "dark_cloud_cover": (0, 2),
    "doji": (1, 1),
    "binhv45_lower_bb_reversal": (2, 0),
    "cluc_low_volume_dip": (2, 0),
    "hlhb_ema_rsi_cross": (2, 0),
    "hlhb_ema_rsi_cross_bear": (0, 2),
    "volatility_breakout": (2, 0),
    "volatility_breakout_bear": (0, 2),
    "adx_trend": (1, 1),
    "emarsi_oversold": (2, 0),
    "supertrend_up": (1, 0),
    "supertrend_down": (0, 1),
}


class CandleConfig(BaseModel):
    """Candle scoring thresholds and pattern reliability table."""

    pattern_weights: Dict[str, Tuple[float, float]] = Field(
        default_factory=lambda: dict(DEFAULT_PATTERN_WEIGHTS),
        description="Pattern -> (bull, bear) reliability weights"
    )

    rsi_period: int = Field(default=14, ge=2)
    rsi_oversold: float = Field(default=30.0, ge=0.0, le=100.0, description="RSI for bull +2")
    rsi_weak_oversold: float = Field(default=40.0, ge=0.0, le=100.0, description="RSI for bull +1")
    rsi_overbought: float = Field(default=70.0, ge=0.0, le=100.0, description="RSI for bear +2")
    rsi_weak_overbought: float = Field(default=60.0, ge=0.0, le=100.0, description="RSI for bear +1")

    macd_fast: int = Field(default=12, ge=1)
    macd_slow: int = Field(default=26, ge=2)
    macd_signal: int = Field(default=9, ge=1)
    macd_crossover_score: float = Field(default=2.0, ge=0.0)

    bb_period: int = Field(default=20, ge=2)
    bb_std: float = Field(default=2.0, gt=0.0)
    bb_squeeze_ratio: float = Field(default=0.8, gt=0.0, le=1.0, description="Width below avg*ratio is a squeeze")
    bb_width_lookback: int = Field(default=20, ge=1)

    ema_fast: int = Field(default=9, ge=1)
    ema_mid: int = Field(default=21, ge=2)
    ema_slow: int = Field(default=50, ge=3)
    ema_trend_score: float = Field(default=2.0, ge=0.0)

    volume_avg_period: int = Field(default=20, ge=1)
    volume_confirm_ratio: float = Field(default=1.2, ge=1.0, description="Volume vs average for confirmation")
    volume_spike_ratio: float = Field(default=1.5, ge=1.0, description="Volume vs previous bar for a spike")
    volume_weight_min: float = Field(default=0.5, gt=0.0)
    volume_weight_max: float = Field(default=2.0, gt=0.0)

    vpa_threshold: float = Field(default=0.15, ge=0.0, le=1.0, description="Volume-price imbalance for +1")
    direction_ratio: float = Field(default=1.3, ge=1.0, description="Stronger side must exceed weaker by this factor")
    min_confidence_pct: float = Field(default=25.0, ge=0.0, le=100.0, description="Minimum bull/bear confidence (%)")
    high_volatility_range: float = Field(default=0.03, gt=0.0, description="Last range/close flagged as high volatility")

    atr_period: int = Field(default=14, ge=1)
    adx_period: int = Field(default=14, ge=1)
    adx_trend_threshold: float = Field(default=25.0, ge=0.0, description="ADX adding the adx_trend pattern")
    emarsi_oversold: float = Field(default=20.0, ge=0.0, le=100.0)
    false_breakout_volume: float = Field(default=1.3, ge=1.0, description="Breakout pattern below avg*this is suspect")

    @model_validator(mode='after')
    def ema_periods_ordered(self):
        """Validate fast < mid < slow EMA periods."""
        if not self.ema_fast < self.ema_mid < self.ema_slow:
            raise ValueError('EMA periods must satisfy ema_fast < ema_mid < ema_slow')
        if self.macd_fast >= self.macd_slow:
            raise ValueError('macd_fast must be < macd_slow')
        return self


# ============================================================================
# Multi-Timeframe
# ============================================================================

class MTFConfig(BaseModel):
    """Multi-timeframe aggregation."""

    timeframe_weights: Dict[str, float] = Field(
        default_factory=lambda: {"1d": 0.25, "4h": 0.20, "1h": 0.20, "15m": 0.15, "5m": 0.10, "1m": 0.10},
        description="Weight per timeframe, iterated higher timeframes first"
    )
    candle_limits: Dict[str, int] = Field(
        default_factory=lambda: {"1m": 500, "5m": 600, "15m": 400, "1h": 250, "4h": 150, "1d": 150},
        description="Candles fetched per timeframe"
    )
    min_candles: int = Field(default=5, ge=1, description="Timeframes with fewer candles are skipped")
    direction_margin: float = Field(default=0.15, ge=0.0, description="Weight margin for an MTF direction")
    score_multiplier: float = Field(default=15.0, gt=0.0, description="Winning weight bucket -> candle score")
    ema_fallback_timeframes: List[str] = Field(
        default_factory=lambda: ["1h", "4h", "1d"],
        description="Timeframes where EMA21/EMA50 position resolves a NEUTRAL reading"
    )
    htf_structure_timeframes: List[str] = Field(
        default_factory=lambda: ["1d", "4h"],
        description="Timeframes whose structure defines the higher-timeframe trend"
    )
    structure_lookback: int = Field(default=3, ge=1)
    structure_min_candles: int = Field(default=15, ge=3)
    structure_swings: int = Field(default=4, ge=2)


# ============================================================================
# Confluence
# ============================================================================

class MTFPolicyConfig(BaseModel):
    """
    Post-confluence multi-timeframe policy.

    Applied in order: alignment bonus, weak-alignment penalty, partial
    alignment cap, higher-timeframe opposition clamp, auxiliary detector
    bonuses.
    """

    strong_align: int = Field(default=5, ge=1)
    strong_align_bonus: float = Field(default=0.10, ge=0.0)
    strong_align_cap: float = Field(default=0.96, le=1.0)
    good_align: int = Field(default=4, ge=1)
    good_align_bonus: float = Field(default=0.06, ge=0.0)
    good_align_cap: float = Field(default=0.95, le=1.0)
    min_align: int = Field(default=3, ge=1)
    min_align_bonus: float = Field(default=0.02, ge=0.0)
    min_align_cap: float = Field(default=0.90, le=1.0)

    penalty_min_timeframes: int = Field(default=5, ge=1, description="Penalties apply only with this many timeframes evaluated")
    weak_align_penalty: float = Field(default=0.08, ge=0.0)
    weak_align_floor: float = Field(default=0.55, ge=0.0)
    partial_align_cap: float = Field(default=0.88, le=1.0)

    htf_penalty: float = Field(default=0.15, ge=0.0)
    htf_floor: float = Field(default=0.50, ge=0.0)
    htf_cap: float = Field(default=0.70, le=1.0)

    hlhb_bonus: float = Field(default=0.04, ge=0.0)
    hlhb_cap: float = Field(default=0.96, le=1.0)
    volatility_breakout_bonus: float = Field(default=0.03, ge=0.0)
    volatility_breakout_cap: float = Field(default=0.96, le=1.0)
    supertrend_bonus: float = Field(default=0.02, ge=0.0)
    supertrend_cap: float = Field(default=0.95, le=1.0)
    adx_threshold: float = Field(default=30.0, ge=0.0)
    adx_bonus: float = Field(default=0.02, ge=0.0)
    adx_cap: float = Field(default=0.94, le=1.0)


class FallbackConfig(BaseModel):
    """Majority vote used when confluence fails."""

    auxiliary_vote: float = Field(default=0.5, ge=0.0, description="Vote of HLHB / volatility breakout")
    conflict_confidence: float = Field(default=0.55, ge=0.0, le=1.0)
    base_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    per_vote: float = Field(default=0.04, ge=0.0)
    max_confidence: float = Field(default=0.75, ge=0.0, le=1.0)


class ConfluenceConfig(BaseModel):
    """Confluence merge weights and ordered adjustments."""

    order_book_weight: float = Field(default=0.40, ge=0.0, le=1.0)
    tape_weight: float = Field(default=0.35, ge=0.0, le=1.0)
    candle_weight: float = Field(default=0.25, ge=0.0, le=1.0)

    max_spread_pct: float = Field(default=0.10, gt=0.0, description="Hard reject above this spread (%)")
    min_agreeing: int = Field(default=2, ge=1, le=3)
    weak_tape_delta: float = Field(default=0.25, ge=0.0, description="Contradicting tape below this |delta| is halved")
    weak_tape_factor: float = Field(default=0.5, ge=0.0, le=1.0)

    base_confidence: float = Field(default=0.62, ge=0.0, le=1.0)
    per_point: float = Field(default=0.026, ge=0.0)
    base_cap: float = Field(default=0.92, le=1.0)
    adjustment_cap: float = Field(default=0.95, le=1.0)

    all_agree_bonus: float = Field(default=0.10, ge=0.0)
    strong_pair_bonus: float = Field(default=0.04, ge=0.0)
    strong_pair_cap: float = Field(default=0.90, le=1.0)
    strong_order_book: float = Field(default=6.0, ge=0.0)
    strong_candles: float = Field(default=5.0, ge=0.0)
    cvd_bonus: float = Field(default=0.05, ge=0.0)
    recent_delta_threshold: float = Field(default=0.15, ge=0.0)
    recent_delta_bonus: float = Field(default=0.04, ge=0.0)
    volume_both_bonus: float = Field(default=0.06, ge=0.0)
    volume_single_bonus: float = Field(default=0.04, ge=0.0)
    dom_threshold: float = Field(default=0.2, ge=0.0)
    dom_bonus: float = Field(default=0.03, ge=0.0)

    min_risk_reward: float = Field(default=1.5, gt=0.0)
    risk_reward_floor: float = Field(default=0.65, ge=0.0, le=1.0)
    default_risk_reward: float = Field(default=1.5, gt=0.0)

    caution_spread_pct: float = Field(default=0.05, ge=0.0)
    caution_penalty: float = Field(default=0.03, ge=0.0)
    caution_floor: float = Field(default=0.55, ge=0.0)
    high_volatility_penalty: float = Field(default=0.05, ge=0.0)
    high_volatility_floor: float = Field(default=0.52, ge=0.0)
    false_breakout_penalty: float = Field(default=0.06, ge=0.0)
    false_breakout_floor: float = Field(default=0.52, ge=0.0)

    min_confidence: float = Field(default=0.60, ge=0.0, le=1.0, description="Final reject below this")

    mtf_policy: MTFPolicyConfig = Field(default_factory=MTFPolicyConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)

    @model_validator(mode='after')
    def spread_band_ordered(self):
        """Validate the caution band sits below the hard spread ceiling."""
        if self.caution_spread_pct >= self.max_spread_pct:
            raise ValueError('caution_spread_pct must be < max_spread_pct')
        return self


# ============================================================================
# Signal Construction
# ============================================================================

class SignalConfig(BaseModel):
    """Stop/target construction and signal confidence."""

    atr_multiplier: float = Field(default=1.35, gt=0.0)
    atr_sl_pct_tight: float = Field(default=0.0055, gt=0.0, description="Stop cap for futures25x/scalping with ATR")
    atr_sl_pct_default: float = Field(default=0.007, gt=0.0, description="Stop cap for other modes with ATR")
    fixed_sl_pct: Dict[str, float] = Field(
        default_factory=lambda: {"futures25x": 0.0055, "scalping": 0.007, "default": 0.013},
        description="Stop distance per mode without ATR"
    )

    rr_min: float = Field(default=2.0, gt=0.0)
    rr_min_scalping: float = Field(default=1.5, gt=0.0)
    tp2_offset: float = Field(default=1.2, gt=0.0)
    tp3_offset: float = Field(default=2.5, gt=0.0)
    fixed_tp_legs: List[float] = Field(
        default_factory=lambda: [1.0, 1.6, 2.7],
        description="Target multiples of tp% without ATR"
    )

    expiry_minutes: int = Field(default=30, ge=1)

    base_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    per_trigger: float = Field(default=0.05, ge=0.0)
    max_confidence: float = Field(default=0.95, ge=0.0, le=1.0)

    rsi_oversold: float = Field(default=35.0, ge=0.0, le=100.0)
    rsi_overbought: float = Field(default=65.0, ge=0.0, le=100.0)
    rsi_oversold_scalping: float = Field(default=25.0, ge=0.0, le=100.0)
    rsi_overbought_scalping: float = Field(default=75.0, ge=0.0, le=100.0)

    rr_penalty_per_unit: float = Field(default=0.05, ge=0.0)
    rr_penalty_floor: float = Field(default=0.5, ge=0.0)
    failed_rsi_low: float = Field(default=30.0, ge=0.0, le=100.0)
    failed_rsi_high: float = Field(default=70.0, ge=0.0, le=100.0)
    failed_signal_penalty: float = Field(default=0.12, ge=0.0)
    failed_signal_floor: float = Field(default=0.45, ge=0.0)
    false_breakout_penalty: float = Field(default=0.08, ge=0.0)
    false_breakout_floor: float = Field(default=0.5, ge=0.0)

    high_confidence: float = Field(default=0.85, ge=0.0, le=1.0)
    medium_confidence: float = Field(default=0.70, ge=0.0, le=1.0)

    price_decimals: int = Field(default=2, ge=0, le=10)


class TrailingStopConfig(BaseModel):
    """Trailing stop ratchet policy."""

    initial_stop_pct: float = Field(default=0.005, gt=0.0, le=0.5)
    trail_step_pct: float = Field(default=0.003, gt=0.0, le=0.5)
    activation_profit_pct: float = Field(default=0.01, ge=0.0, le=1.0)


# ============================================================================
# Risk Gates
# ============================================================================

class RiskLimitsConfig(BaseModel):
    """Position/trade-count/duration/balance limits."""

    max_positions_total: int = Field(default=5, ge=1, le=100)
    max_positions_per_symbol: int = Field(default=1, ge=1, le=20)
    max_daily_trades: int = Field(default=50, ge=1, le=10000)
    max_position_duration_hours: float = Field(default=24.0, gt=0.0)
    min_balance_warning: float = Field(default=100.0, ge=0.0)
    min_balance_critical: float = Field(default=50.0, ge=0.0)

    @field_validator('min_balance_critical')
    @classmethod
    def critical_below_warning(cls, v, info):
        """Validate that min_balance_critical <= min_balance_warning."""
        warning = info.data.get('min_balance_warning')
        if warning is not None and v > warning:
            raise ValueError('min_balance_critical must be <= min_balance_warning')
        return v


class EmotionalFilterConfig(BaseModel):
    """Loss-streak cooldown and daily drawdown breaker."""

    cooldown_minutes: float = Field(default=30.0, ge=0.0)
    max_loss_streak: int = Field(default=3, ge=1)
    max_daily_drawdown_pct: float = Field(default=5.0, gt=0.0, le=100.0)
    initial_balance: float = Field(default=100.0, ge=0.0)


class SizingConfig(BaseModel):
    """Risk-based position sizing."""

    risk_pct: float = Field(default=0.02, gt=0.0, le=1.0)
    max_risk_pct: float = Field(default=0.03, gt=0.0, le=1.0)
    high_volatility_ratio: float = Field(default=1.5, gt=1.0, description="ATR/avg ATR considered high volatility")
    high_volatility_multiplier: float = Field(default=0.7, gt=0.0, le=1.0)


# ============================================================================
# Levels and Breakouts
# ============================================================================

class LevelConfig(BaseModel):
    """Support/resistance detection."""

    min_candles: int = Field(default=20, ge=3)
    lookback: Dict[str, int] = Field(
        default_factory=lambda: {"high": 3, "medium": 5, "low": 7},
        description="Swing lookback per sensitivity"
    )
    tolerance_factor: float = Field(default=0.3, gt=0.0)
    tolerance_min: float = Field(default=0.003, gt=0.0)
    tolerance_max: float = Field(default=0.01, gt=0.0)

    touch_weight: float = Field(default=2.0, ge=0.0)
    touch_cap: float = Field(default=6.0, ge=0.0)
    volume_unit: float = Field(default=10000.0, gt=0.0)
    volume_cap: float = Field(default=4.0, ge=0.0)
    max_strength: float = Field(default=10.0, gt=0.0)

    profile_min_candles: int = Field(default=50, ge=1)
    profile_top: int = Field(default=5, ge=1)
    profile_step_factor: float = Field(default=0.1, gt=0.0)
    profile_min_step: float = Field(default=0.01, gt=0.0)
    profile_volume_unit: float = Field(default=1000.0, gt=0.0)

    nearest_max_distance: float = Field(default=0.03, gt=0.0)
    approach_threshold: float = Field(default=0.01, gt=0.0)
    broken_confirmation: float = Field(default=0.002, ge=0.0)

    @model_validator(mode='after')
    def tolerance_band_ordered(self):
        """Validate tolerance_min <= tolerance_max."""
        if self.tolerance_min > self.tolerance_max:
            raise ValueError('tolerance_min must be <= tolerance_max')
        return self


class BreakoutConfig(BaseModel):
    """Breakout confirmation scoring."""

    min_candles: int = Field(default=3, ge=2)
    confirmation_pct: float = Field(default=0.0015, ge=0.0)
    volume_lookback: int = Field(default=20, ge=1)
    volume_confirm_ratio: float = Field(default=1.2, ge=1.0)
    close_beyond_pct: float = Field(default=0.002, ge=0.0)

    base_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    min_confidence: float = Field(default=0.55, ge=0.0, le=1.0)
    volume_bonus: float = Field(default=0.15)
    above_average_bonus: float = Field(default=0.05)
    low_volume_penalty: float = Field(default=0.10)
    strong_pressure: float = Field(default=1.5)
    strong_pressure_bonus: float = Field(default=0.15)
    moderate_pressure: float = Field(default=1.2)
    moderate_pressure_bonus: float = Field(default=0.08)
    pressure_confidence_bonus: float = Field(default=0.05)
    tape_delta_threshold: float = Field(default=0.15)
    tape_bonus: float = Field(default=0.12)
    strong_level: float = Field(default=7.0)
    strong_level_bonus: float = Field(default=0.10)
    medium_level: float = Field(default=5.0)
    medium_level_bonus: float = Field(default=0.05)
    high_risk: float = Field(default=0.5)
    high_risk_penalty: float = Field(default=0.15)
    medium_risk: float = Field(default=0.3)
    medium_risk_penalty: float = Field(default=0.08)
    close_beyond_bonus: float = Field(default=0.08)
    funding_penalty: float = Field(default=0.12)

    false_volume_min: float = Field(default=1.3, description="Volume ratio below which a breakout is suspicious")
    low_volume_risk: float = Field(default=0.4)
    below_confirm_risk: float = Field(default=0.2)
    weak_body_ratio: float = Field(default=0.4)
    weak_body_risk: float = Field(default=0.2)
    no_close_beyond_risk: float = Field(default=0.3)

    entry_optimal_pct: float = Field(default=0.003, gt=0.0)
    entry_near_pct: float = Field(default=0.001, gt=0.0)
    entry_far_pct: float = Field(default=0.008, gt=0.0)
    invalidation_pct: float = Field(default=0.005, gt=0.0)

    monitor_interval_seconds: float = Field(default=15.0, gt=0.0)
    monitor_min_confidence: float = Field(default=0.75, ge=0.0, le=1.0)
    monitor_timeframe: str = Field(default="15m")
    monitor_candle_limit: int = Field(default=200, ge=20)
    monitor_level_distance: float = Field(default=0.02, gt=0.0)


# ============================================================================
# Runtime Services
# ============================================================================

class OnlineModelConfig(BaseModel):
    """Online logistic confidence model."""

    enabled: bool = Field(default=True)
    learning_rate: float = Field(default=0.1, gt=0.0)
    l2: float = Field(default=0.01, ge=0.0)
    min_samples: int = Field(default=5, ge=0)
    max_blend: float = Field(default=0.5, ge=0.0, le=1.0)
    blend_samples: int = Field(default=50, ge=1)
    blend_scale: float = Field(default=0.3, ge=0.0, le=1.0)
    log_every: int = Field(default=10, ge=1)


class SchedulerConfig(BaseModel):
    """Periodic analysis scheduler."""

    model_config = ConfigDict(use_enum_values=True)

    interval_seconds: float = Field(default=60.0, description="Tick interval, clamped to [30, 300]")
    symbols: List[str] = Field(default_factory=lambda: ["BTC/USDT"])
    primary_timeframe: str = Field(default="5m")
    mode: TradingMode = Field(default=TradingMode.DEFAULT)
    order_book_depth: int = Field(default=400, ge=5)
    trades_limit: int = Field(default=500, ge=5)
    auto_min_confidence: float = Field(default=0.82, ge=0.0, le=1.0)

    @field_validator('interval_seconds')
    @classmethod
    def clamp_interval(cls, v):
        """Clamp the tick interval to [30, 300] seconds."""
        return max(30.0, min(300.0, float(v)))


# ============================================================================
# Engine Configuration
# ============================================================================

class EngineConfig(BaseModel):
    """Complete engine configuration."""

    system: SystemConfig = Field(default_factory=SystemConfig)
    order_book: OrderBookConfig = Field(default_factory=OrderBookConfig)
    tape: TapeConfig = Field(default_factory=TapeConfig)
    candles: CandleConfig = Field(default_factory=CandleConfig)
    mtf: MTFConfig = Field(default_factory=MTFConfig)
    confluence: ConfluenceConfig = Field(default_factory=ConfluenceConfig)
    signal: SignalConfig = Field(default_factory=SignalConfig)
    trailing_stop: TrailingStopConfig = Field(default_factory=TrailingStopConfig)
    risk: RiskLimitsConfig = Field(default_factory=RiskLimitsConfig)
    emotional_filter: EmotionalFilterConfig = Field(default_factory=EmotionalFilterConfig)
    sizing: SizingConfig = Field(default_factory=SizingConfig)
    levels: LevelConfig = Field(default_factory=LevelConfig)
    breakout: BreakoutConfig = Field(default_factory=BreakoutConfig)
    online_model: OnlineModelConfig = Field(default_factory=OnlineModelConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    model_config = ConfigDict(use_enum_values=True)
