from typing import Dict, Optional

from infra.config import ModelPricing


class CostCalculator:
    """Raw USD cost from token counts using the library's pricing table."""

    def __init__(self, pricing: Optional[Dict[str, ModelPricing]] = None):
        self.pricing = pricing or {}

    def get_model_pricing(self, model_id: str) -> Optional[ModelPricing]:
        if model_id in self.pricing:
            return self.pricing[model_id]
        # OpenRouter ids carry a vendor prefix ("google/gemini-2.5-flash")
        short = model_id.split('/', 1)[-1]
        return self.pricing.get(short)

    def calculate_cost(self, model_id: str, input_tokens: int, output_tokens: int) -> float:
        pricing = self.get_model_pricing(model_id)

        if not pricing:
            return 0.0

        input_cost = input_tokens * pricing.input_per_million / 1_000_000
        output_cost = output_tokens * pricing.output_per_million / 1_000_000

        return round(input_cost + output_cost, 8)
