"""Two-layer prompt router.

Layer 1 classifies the message; layer 2 hands it to the handler for that
category (transfer, other actions, strategy, information, feedbacks,
pipeline, portfolio) and wraps the outcome with routing metadata.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any

from core.ai.router import TASK_CONFIGS, LLMRouter
from core.ai.types import TaskName
from core.chain.portfolio import PortfolioController
from core.chain.transfer import TransferService
from core.intent.classifier import Classification
from core.intent.pipeline import validate_pipeline
from core.intent.service import IntentService
from core.intent.validation import validate_and_resolve_arguments
from core.market_data.mcp_client import MarketDataError, MCPMarketDataService, format_market_data_for_llm
from core.market_data.prices import PriceFeed
from core.routing.actions import ActionsProcessor
from core.routing.helpers import (
    assess_investment_opportunities,
    assess_network_health,
    assess_risk_factors,
    classify_feedback_request,
    classify_information_request,
    extract_network_mentions,
    extract_risk_preference,
    extract_token_mentions,
    extract_token_type_preference,
    generate_related_queries,
    recommendation_criteria_from_message,
    sanitize,
)

logger = logging.getLogger(__name__)

ROUTER_VERSION = "1.0.0"

SUPPORTED_TYPES = ["actions", "strategy", "information", "feedbacks", "pipeline", "portfolio-information"]

# MCP tools queried for market intelligence, with the count line each one prints
INTELLIGENCE_TOOLS: dict[str, tuple[str, dict[str, Any], re.Pattern[str]]] = {
    "newPools": ("get_new_pools", {"hours_back": 24}, re.compile(r"Found: (\d+) pools")),
    "trendingPools": ("get_trending_pools", {}, re.compile(r"Found: (\d+) trending pools")),
    "newTokens": ("get_new_tokens", {"count": 10}, re.compile(r"Found: (\d+) new tokens")),
}

INTELLIGENCE_SUMMARIES = {
    "newPools": "Found {n} new pools in the last 24 hours",
    "trendingPools": "Found {n} trending pools with high activity",
    "newTokens": "Discovered {n} newly listed tokens",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# -----------------------------------------------------------------------------
# Rule-based analyses used when the LLM is unavailable
# -----------------------------------------------------------------------------


def basic_strategy_analysis(token_mentions: list[str], prices: dict[str, Any]) -> dict[str, Any]:
    if token_mentions:
        allocation = [
            {
                "token": symbol,
                "targetWeight": round(100 / len(token_mentions), 2),
                "currentPrice": (prices.get(symbol) or {}).get("price", 0),
                "allocation": "CORE" if i == 0 else "SATELLITE",
                "reasoning": f"{symbol} provides {'core' if i == 0 else 'diversified'} exposure",
            }
            for i, symbol in enumerate(token_mentions)
        ]
    else:
        allocation = [
            {"token": "TON", "targetWeight": 40, "allocation": "CORE", "reasoning": "Network gas and foundation"},
            {"token": "USDT", "targetWeight": 35, "allocation": "STABLE", "reasoning": "Stability buffer"},
            {"token": "DUCK", "targetWeight": 25, "allocation": "GROWTH", "reasoning": "Ecosystem growth exposure"},
        ]
    return {
        "strategy": {
            "name": "Balanced Market Strategy",
            "objective": "Diversified exposure to the DuckChain ecosystem",
            "riskLevel": 50,
            "expectedReturn": 20.0,
            "timeHorizon": "6-12 months",
            "confidenceScore": 70,
        },
        "analysis": {
            "marketPhase": "accumulation",
            "opportunityScore": 75,
            "riskReward": 2.0,
            "marketSentiment": "neutral",
        },
        "allocation": allocation,
        "confidence": "medium",
    }


def basic_action_plan(token_mentions: list[str]) -> dict[str, Any]:
    tokens = token_mentions or ["TON", "DUCK", "USDT"]
    stamp = int(time.time() * 1000)
    return {
        "phases": [
            {
                "phaseNumber": 1,
                "phaseName": "Initial Setup",
                "duration": "1 week",
                "tasks": [
                    {
                        "taskId": f"task_{stamp}_{i}",
                        "taskType": "BUY",
                        "tokenSymbol": token,
                        "allocation": f"{round(100 / len(tokens))}%",
                        "priority": "high" if i == 0 else "medium",
                        "executionInstructions": f"Acquire {token} allocation during favorable market conditions",
                    }
                    for i, token in enumerate(tokens)
                ],
            },
            {
                "phaseNumber": 2,
                "phaseName": "Monitoring & Optimization",
                "duration": "4-8 weeks",
                "tasks": [
                    {
                        "taskId": f"task_{stamp}_monitor",
                        "taskType": "MONITOR",
                        "tokenSymbol": "ALL",
                        "allocation": "100%",
                        "priority": "medium",
                        "triggerConditions": {"timeCondition": "daily", "marketCondition": "any"},
                        "executionInstructions": "Monitor portfolio performance and market conditions",
                    }
                ],
            },
        ],
        "totalEstimatedDuration": "6-10 weeks",
        "riskManagement": {"stopLossGlobal": 15, "takeProfitGlobal": 25, "maxDrawdown": 20, "riskScore": 50},
    }


def basic_information_analysis(
    request_type: str, token_mentions: list[str], prices: dict[str, Any]
) -> dict[str, Any]:
    insights = []
    for symbol in token_mentions:
        quote = prices.get(symbol)
        if not quote:
            continue
        change = quote.get("change24h") or 0
        if change > 5:
            trend = "strong upward momentum"
        elif change > 0:
            trend = "positive momentum"
        elif change > -5:
            trend = "sideways consolidation"
        else:
            trend = "downward pressure"
        insights.append(f"{symbol} at ${quote.get('price', 0):,.6g} showing {trend} ({change:+.2f}% 24h)")

    if insights:
        analysis = "Current market snapshot: " + "; ".join(insights) + "."
    elif prices:
        listed = ", ".join(f"{s} ${q.get('price', 0):,.6g}" for s, q in list(prices.items())[:5])
        analysis = f"Latest reference prices: {listed}."
    else:
        analysis = "Market data is limited right now; only general guidance is available."

    return {
        "analysis": analysis,
        "recommendations": ["Compare liquidity and volume before trading", "Size positions to your risk tolerance"],
        "actionableInsights": insights,
        "riskWarnings": ["Prices are indicative and may lag the market"],
        "nextSteps": generate_related_queries(request_type),
        "confidence": "medium",
    }


def basic_feedback_analysis(token_mentions: list[str], prices: dict[str, Any]) -> dict[str, Any]:
    recommendations = []
    found = [s for s in token_mentions if s in prices]
    if found:
        avg_change = sum(prices[s].get("change24h") or 0 for s in found) / len(found)
        overview = (
            f"Portfolio analysis for {len(found)} of {len(token_mentions)} mentioned tokens. "
            f"Average 24h performance: {avg_change:+.2f}%. "
        )
        for symbol in found:
            change = prices[symbol].get("change24h") or 0
            if change > 10:
                recommendations.append(
                    {
                        "type": "reduce",
                        "token": symbol,
                        "reasoning": f"{symbol} showing strong gains (+{change:.2f}%). Consider taking profits.",
                        "priority": "medium",
                        "timeframe": "short-term",
                    }
                )
            elif change < -10:
                recommendations.append(
                    {
                        "type": "watch",
                        "token": symbol,
                        "reasoning": f"{symbol} down {change:.2f}%. Monitor for potential buying opportunity.",
                        "priority": "medium",
                        "timeframe": "short-term",
                    }
                )
            else:
                recommendations.append(
                    {
                        "type": "hold",
                        "token": symbol,
                        "reasoning": f"{symbol} showing stable performance. Continue monitoring.",
                        "priority": "low",
                        "timeframe": "medium-term",
                    }
                )
    else:
        overview = "General portfolio guidance for the DuckChain ecosystem. "
        recommendations.append(
            {
                "type": "add",
                "token": "TON",
                "reasoning": "Hold TON as core network exposure and gas reserve.",
                "priority": "medium",
                "timeframe": "long-term",
            }
        )
    return {
        "analysis": {"portfolioOverview": overview},
        "recommendations": recommendations,
        "riskAssessment": {
            "currentRiskLevel": "medium",
            "riskFactors": ["Market volatility", "Limited liquidity for some tokens"],
            "mitigationStrategies": ["Diversification", "Position sizing", "Regular rebalancing"],
        },
    }


# -----------------------------------------------------------------------------
# Router
# -----------------------------------------------------------------------------


class PromptRouter:
    def __init__(
        self,
        router: LLMRouter,
        intent: IntentService,
        actions: ActionsProcessor,
        transfers: TransferService,
        market: MCPMarketDataService,
        prices: PriceFeed,
        portfolio: PortfolioController,
    ) -> None:
        self.router = router
        self.intent = intent
        self.actions = actions
        self.transfers = transfers
        self.market = market
        self.prices = prices
        self.portfolio = portfolio
        self._requests = 0
        self._failures = 0
        self._total_ms = 0.0

    # -- market data --------------------------------------------------------

    async def _price_table(self, symbols: list[str] | None = None) -> dict[str, Any]:
        return await asyncio.to_thread(self.prices.fetch_market_data, symbols)

    async def _intelligence_entry(self, key: str, network: str) -> dict[str, Any]:
        tool, extra, pattern = INTELLIGENCE_TOOLS[key]
        try:
            result = await self.market.call_tool(tool, {"network": network, **extra})
            text = result.text
        except MarketDataError as e:
            logger.warning("%s fetch failed: %s", tool, e)
            text = f"{key}: Error fetching data"
        match = pattern.search(text)
        count = int(match.group(1)) if match else 0
        return {"count": count, "data": text, "summary": INTELLIGENCE_SUMMARIES[key].format(n=count)}

    async def get_market_intelligence(self, network: str) -> dict[str, Any]:
        """New pools, trending pools and new tokens on ``network``."""
        intelligence: dict[str, Any] = {
            "network": network,
            "timestamp": _now(),
            "newPools": {},
            "newTokens": {},
            "trendingPools": {},
            "summary": {},
            "dataSource": "MCP",
        }
        if not self.market.connected:
            intelligence["summary"] = {"error": "MCP service not available", "fallback": True}
            return intelligence

        keys = list(INTELLIGENCE_TOOLS)
        entries = await asyncio.gather(*(self._intelligence_entry(key, network) for key in keys))
        intelligence.update(dict(zip(keys, entries)))
        intelligence["summary"] = {
            "totalNewOpportunities": intelligence["newPools"]["count"] + intelligence["newTokens"]["count"],
            "marketActivity": intelligence["trendingPools"]["count"],
            "networkHealth": assess_network_health(intelligence),
            "investmentOpportunities": assess_investment_opportunities(intelligence),
            "riskFactors": assess_risk_factors(intelligence),
        }
        return intelligence

    async def _market_context(self, message: str, token_mentions: list[str]) -> dict[str, Any]:
        lower = message.lower()
        criteria = recommendation_criteria_from_message(message)
        network_specific = "recommend" in lower or any(
            n != "duckchain" for n in extract_network_mentions(message)
        )
        context: dict[str, Any] | None = None
        if network_specific:
            pipeline = await self.market.get_network_pipeline(criteria=criteria, count=5, user_message=message)
            if pipeline["success"]:
                context = {
                    "success": True,
                    "timestamp": pipeline["timestamp"],
                    "network": pipeline["targetNetwork"],
                    "data": {
                        "topPools": {"success": True, "data": pipeline["data"]["pools"]},
                        "tokenRecommendations": {"success": True, "data": pipeline["data"]["recommendations"]},
                        "networkSpecific": {"success": True, "data": pipeline["data"]["tokenData"]},
                    },
                    "dataSource": "NETWORK_PIPELINE",
                }
            else:
                logger.warning("Network pipeline failed, using general market context")
        if context is None:
            context = await self.market.get_market_context_for_llm(recommendation_criteria=criteria)
            context["dataSource"] = "MCP_CLIENT" if self.market.connected else "GECKOTERMINAL"

        specific = []
        for symbol in token_mentions[:3]:
            search = await self.market.search_pools(symbol)
            if search["success"]:
                specific.append({"token": symbol, "searchData": search["data"]})
        context["specificTokens"] = specific
        return context

    # -- handlers -----------------------------------------------------------

    async def process_actions(
        self, message: str, classification: Classification, *, execute: bool, user_id: str | None
    ) -> dict[str, Any]:
        result = await self.actions.process_action(message, classification, execute=execute, user_id=user_id)
        return {
            "type": "actions",
            "subtype": classification.action_subtype,
            "result": result,
            "status": "completed",
            "processingMethod": "specialized_actions_llm" if self.router.is_available() else "basic_action_plan",
        }

    async def process_strategy(
        self,
        message: str,
        classification: Classification,
        *,
        market_intelligence: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        token_mentions = extract_token_mentions(message)
        market = await self._price_table(list(dict.fromkeys(token_mentions + ["TON", "DUCK", "USDT"])))
        prices = market["tokens"]
        preferences = {
            "risk": extract_risk_preference(message),
            "tokenTypes": extract_token_type_preference(message),
        }

        analysis: dict[str, Any] | None = None
        if self.router.is_available():
            response = await self.router.complete_json(
                TaskName.STRATEGY,
                f'User request: "{message}"\nMentioned tokens: {", ".join(token_mentions) or "none"}',
                context={
                    "prices": prices,
                    "preferences": preferences,
                    "marketIntelligence": (market_intelligence or {}).get("summary"),
                },
            )
            if response.ok:
                analysis = response.parsed
            else:
                logger.warning("Strategy analysis failed (%s), using basic analysis", response.error)
        ai_enhanced = analysis is not None
        if analysis is None:
            analysis = basic_strategy_analysis(token_mentions, prices)

        analysis.setdefault("strategy", {"name": "Basic Strategy", "riskLevel": 50, "expectedReturn": 15})
        analysis.setdefault("allocation", [])
        analysis.setdefault("alerts", ["Monitor market conditions", "Review allocation monthly"])
        if not analysis.get("actionPlan"):
            analysis["actionPlan"] = basic_action_plan(token_mentions)

        return {
            "type": "strategy",
            "result": {
                "strategy": analysis.get("strategy") or {},
                "analysis": analysis.get("analysis") or {},
                "allocation": analysis["allocation"],
                "recommendations": analysis.get("recommendations") or [],
                "riskAssessment": analysis.get("riskAssessment") or {},
                "implementation": analysis.get("implementation") or {},
                "performance": analysis.get("performance") or {},
                "timeline": analysis.get("timeline") or {},
                "actionPlan": analysis["actionPlan"],
                "alerts": analysis["alerts"],
                "preferences": preferences,
                "marketContext": {
                    "timestamp": market.get("timestamp"),
                    "source": market.get("source"),
                    "marketCap": market.get("marketCap"),
                    "totalVolume": market.get("totalVolume"),
                },
            },
            "status": "completed",
            "processingMethod": "ai_powered_strategy_analysis" if ai_enhanced else "basic_strategy_analysis",
            "confidence": analysis.get("confidence", "medium"),
            "aiEnhanced": ai_enhanced,
        }

    async def process_information(self, message: str, classification: Classification) -> dict[str, Any]:
        token_mentions = extract_token_mentions(message)
        request_type = classify_information_request(message)
        context = await self._market_context(message, token_mentions)
        market = await self._price_table(token_mentions or None)
        prices = market["tokens"]

        analysis: dict[str, Any] | None = None
        if self.router.is_available():
            response = await self.router.complete_json(
                TaskName.INFORMATION,
                (
                    f'User question: "{message}"\nRequest type: {request_type}\n\n'
                    f"{format_market_data_for_llm(context)}"
                ),
                context={"prices": prices, "specificTokens": context["specificTokens"]},
            )
            if response.ok:
                analysis = response.parsed
            else:
                logger.warning("Information analysis failed (%s), using basic analysis", response.error)
        ai_enhanced = analysis is not None
        if analysis is None:
            analysis = basic_information_analysis(request_type, token_mentions, prices)

        return {
            "type": "information",
            "result": {
                "requestType": request_type,
                "analysis": analysis.get("analysis"),
                "recommendations": analysis.get("recommendations") or [],
                "marketContext": {
                    "dataSource": context.get("dataSource"),
                    "network": context.get("network"),
                    "lastUpdated": context.get("timestamp"),
                    "priceSource": market.get("source"),
                    "tokensAnalyzed": len(token_mentions) or "general_market",
                    "aiModel": TASK_CONFIGS[TaskName.INFORMATION].model if ai_enhanced else None,
                },
                "actionableInsights": analysis.get("actionableInsights") or [],
                "riskWarnings": analysis.get("riskWarnings") or [],
                "nextSteps": analysis.get("nextSteps") or [],
                "relatedQueries": generate_related_queries(request_type),
            },
            "status": "completed",
            "processingMethod": "ai_powered_market_analysis" if ai_enhanced else "basic_market_analysis",
            "confidence": analysis.get("confidence", "high" if ai_enhanced else "medium"),
        }

    async def process_feedbacks(self, message: str, classification: Classification) -> dict[str, Any]:
        token_mentions = extract_token_mentions(message)
        feedback_type = classify_feedback_request(message)
        market = await self._price_table(token_mentions or None)
        prices = market["tokens"]

        analysis: dict[str, Any] | None = None
        if self.router.is_available():
            response = await self.router.complete_json(
                TaskName.FEEDBACK,
                f'User request: "{message}"\nFeedback type: {feedback_type}',
                context={"prices": prices, "tokens": token_mentions},
            )
            if response.ok:
                analysis = response.parsed
            else:
                logger.warning("Feedback analysis failed (%s), using basic analysis", response.error)
        ai_enhanced = analysis is not None
        if analysis is None:
            analysis = basic_feedback_analysis(token_mentions, prices)

        return {
            "type": "feedbacks",
            "result": {
                "feedbackType": feedback_type,
                "analysis": analysis.get("analysis") or analysis.get("assessment") or {},
                "recommendations": analysis.get("recommendations") or analysis.get("improvements") or [],
                "riskAssessment": analysis.get("riskAssessment") or {"currentRiskLevel": "medium"},
                "actionItems": analysis.get("actionItems")
                or ["Review portfolio allocation", "Monitor market trends", "Consider rebalancing"],
                "strengths": analysis.get("strengths") or [],
                "lessons": analysis.get("lessons") or [],
                "score": analysis.get("score"),
            },
            "status": "completed",
            "processingMethod": "ai_powered_feedback_analysis" if ai_enhanced else "basic_feedback_analysis",
            "aiEnhanced": ai_enhanced,
        }

    async def process_pipeline(self, message: str) -> dict[str, Any]:
        extraction = await self.intent.extractor.extract_pipeline_arguments(message)
        validation = validate_pipeline(extraction.get("pipeline"), message)
        return {
            "type": "pipeline",
            "result": {"pipeline": extraction.get("pipeline"), "validation": validation},
            "status": "validated" if validation["isValid"] else "invalid",
            "processingMethod": "pipeline_extraction",
        }

    async def process_portfolio(
        self, message: str, classification: Classification, user_id: str | None
    ) -> dict[str, Any]:
        extraction = await self.intent.extract(message, classification)
        validation = validate_and_resolve_arguments(extraction, self.intent.contacts)
        intent = {"classification": classification.to_dict(), "extraction": extraction, "validation": validation}
        result = await asyncio.to_thread(self.portfolio.process_portfolio_request, intent, user_id)
        return {
            "type": "portfolio-information",
            "subtype": classification.action_subtype,
            "result": result,
            "status": "completed" if result["success"] else "error",
        }

    @staticmethod
    def process_default(classification: Classification) -> dict[str, Any]:
        return {
            "type": "unknown",
            "result": {
                "message": "Unable to determine the type of your request",
                "suggestion": "Please try rephrasing your message to be more specific",
                "supportedTypes": list(SUPPORTED_TYPES),
                "classification": classification.to_dict(),
            },
            "status": "unknown",
            "processingMethod": "default_fallback",
        }

    # -- entry point --------------------------------------------------------

    async def _dispatch(
        self,
        message: str,
        classification: Classification,
        user_id: str | None,
        agent_id: str | None,
        execute: bool,
    ) -> dict[str, Any]:
        kind = classification.type
        if kind == "actions" and classification.action_subtype == "transfer":
            result = await self.transfers.process_transfer_request(message, user_id or "anonymous", agent_id)
            return {
                "success": result["success"],
                "type": "transfer",
                "status": result["status"],
                "result": result,
                "timestamp": _now(),
            }
        if kind == "actions":
            return await self.process_actions(message, classification, execute=execute, user_id=user_id)
        if kind in ("strategy", "information"):
            network = extract_network_mentions(message)[0]
            intelligence = await self.get_market_intelligence(network)
            if kind == "strategy":
                processing = await self.process_strategy(message, classification, market_intelligence=intelligence)
            else:
                processing = await self.process_information(message, classification)
                processing["result"]["enhancedFeatures"] = {
                    "newPoolsDetection": True,
                    "newTokensDiscovery": True,
                    "trendingAnalysis": True,
                }
            processing["result"]["marketIntelligence"] = intelligence
            processing["result"]["networkAnalyzed"] = network
            return processing
        if kind == "feedbacks":
            return await self.process_feedbacks(message, classification)
        if kind == "pipeline":
            return await self.process_pipeline(message)
        if kind == "portfolio-information":
            return await self.process_portfolio(message, classification, user_id)
        return self.process_default(classification)

    async def route_prompt(
        self,
        message: str,
        user_id: str | None = None,
        agent_id: str | None = None,
        execute: bool = False,
    ) -> dict[str, Any]:
        """Classify ``message`` and run the matching handler.

        Returns ``{success, data: {classification, processing, metadata}}``
        with every value JSON-safe.
        """
        start = time.perf_counter()
        self._requests += 1
        try:
            classification = await self.intent.classify_message(message)
            logger.info(
                "Routing %s/%s (confidence %.2f) for user %s",
                classification.type,
                classification.action_subtype,
                classification.confidence,
                user_id or "anonymous",
            )
            processing = await self._dispatch(message, classification, user_id, agent_id, execute)
        except Exception:
            self._failures += 1
            raise
        finally:
            self._total_ms += (time.perf_counter() - start) * 1000

        elapsed = int((time.perf_counter() - start) * 1000)
        return sanitize(
            {
                "success": True,
                "data": {
                    "classification": {
                        "type": classification.type,
                        "confidence": classification.confidence,
                        "reasoning": classification.reasoning,
                        "keywords": classification.keywords,
                        "actionSubtype": classification.action_subtype,
                    },
                    "processing": processing,
                    "metadata": {
                        "originalMessage": message,
                        "userId": user_id,
                        "agentId": str(agent_id) if agent_id else None,
                        "processingTime": f"{elapsed}ms",
                        "timestamp": _now(),
                        "routerVersion": ROUTER_VERSION,
                    },
                },
            }
        )

    def get_router_info(self) -> dict[str, Any]:
        completed = self._requests - self._failures
        return {
            "routerVersion": ROUTER_VERSION,
            "description": "Two-layer prompt routing system for DuckChain operations",
            "layer1": {
                "name": "Message Classification",
                "llmAvailable": self.router.is_available(),
                "supportedTypes": list(SUPPORTED_TYPES),
            },
            "layer2": {
                "name": "Specialized Processing",
                "services": {
                    "actions": {"status": "implemented", "supportedActions": self.actions.get_supported_actions()},
                    "strategy": {"status": "implemented", "description": "Investment and trading strategy generation"},
                    "information": {"status": "implemented", "description": "Market data and token insights"},
                    "feedbacks": {"status": "implemented", "description": "Action analysis and recommendations"},
                    "pipeline": {"status": "implemented", "description": "Trigger/action automation validation"},
                    "portfolio-information": {"status": "implemented", "description": "Agent wallet balances"},
                },
            },
            "marketData": self.market.get_status(),
            "usage": {
                "totalRequests": self._requests,
                "failedRequests": self._failures,
                "successRate": f"{completed / self._requests:.0%}" if self._requests else None,
                "averageResponseTime": f"{self._total_ms / self._requests:.0f}ms" if self._requests else None,
            },
            "timestamp": _now(),
        }

    def get_supported_actions(self) -> list[str]:
        return self.actions.get_supported_actions()
