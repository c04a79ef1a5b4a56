"""Command-line entry point that wires Hydra configuration to the cached lookups."""

import asyncio
import sys
from pathlib import Path

# Ensure the project root is on the import path when executed as a script.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import hydra
from omegaconf import DictConfig, OmegaConf

from khetismart.config import app_config
from khetismart.market import prediction_sentiment
from khetismart.service import KhetiSmartApp, MarketBoard

TREND_ICONS = {"up": "▲", "down": "▼", "stable": "•"}


def _require_crop(cfg: DictConfig) -> str:
    crop = cfg.get("crop")
    if not crop:
        print(f"❌ Error: command '{cfg.command}' needs crop=<name>.")
        sys.exit(1)
    return str(crop)


def print_board(board: MarketBoard) -> None:
    if board.error:
        print(f"⚠️ {board.error}")
    items = board.visible_items()
    origin = "cache" if board.showing_cached else "live"
    print(f"\n📊 {len(items)} item(s) ({origin}), prices in {board.currency}:")
    for item in items:
        price = board.display_price(item)
        icon = TREND_ICONS.get(item.trend, "")
        print(f"  {icon} {item.name:<28} {price:>10.2f} / {item.unit}  [{item.category}]")
    if board.sources:
        print("\n🔗 Sources:")
        for source in board.sources:
            print(f"  - {source.title or source.uri}: {source.uri}")


async def run_command(cfg: DictConfig, app: KhetiSmartApp) -> None:
    command = cfg.command

    if command == "prices":
        board = app.market_board()
        board.category = cfg.get("category") or board.category
        board.query = cfg.get("query") or ""
        if cfg.get("currency") == "USD":
            board.toggle_currency()
        await board.load_prices(force_refresh=bool(cfg.force_refresh))
        print_board(board)
    elif command == "history":
        crop = _require_crop(cfg)
        outcome = await app.history.get(crop, force_refresh=bool(cfg.force_refresh))
        series = outcome.value or outcome.stale or []
        if outcome.failed:
            print(f"⚠️ Could not refresh price history for {crop} ({outcome.error.value}).")
        print(f"\n📈 {crop}: last {len(series)} day(s)")
        for point in series:
            print(f"  {point.date:<8} {point.price:>10.2f}")
    elif command == "predict":
        crop = _require_crop(cfg)
        outcome = await app.predictions.get(crop, force_refresh=bool(cfg.force_refresh))
        text = outcome.value or outcome.stale or "Could not fetch market prediction."
        print(f"\n🔮 {crop} ({prediction_sentiment(text)}): {text}")
    elif command == "advice":
        question = cfg.get("question")
        if not question:
            print("❌ Error: command 'advice' needs question=<text>.")
            sys.exit(1)
        print(await app.advisor.advice(str(question)))
    elif command == "guide":
        print(await app.advisor.guide(_require_crop(cfg)))
    else:
        print(f"❌ Unknown command: {command}. Expected prices, history, predict, advice or guide.")
        sys.exit(1)


@hydra.main(config_path="../configs", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Hydra-driven execution entry point for KhetiSmart."""
    print("\n" + "=" * 70)
    print("🌾 KHETISMART – KALIMATI MARKET ASSISTANT")
    print("=" * 70)
    print(OmegaConf.to_yaml(cfg.cache))

    app_config.configure(cfg)
    app = KhetiSmartApp(settings=app_config.model_config)
    try:
        asyncio.run(run_command(cfg, app))
    except KeyboardInterrupt:
        print("\n\n⚠️ Interrupted by user")


if __name__ == "__main__":
    main()
