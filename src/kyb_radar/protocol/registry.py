"""
Tool registry for the KYB protocol server

Each pipeline stage is exposed as a LangChain StructuredTool with a Pydantic
input schema. Wire names are fixed; the catalog returned by list_tools() is
built once and never changes for the process lifetime.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Type, Union

from langchain_core.tools import StructuredTool
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from ..errors import InvalidArgumentError, ToolNotFoundError
from ..pipeline import KYBConductor


class ToolName(str, Enum):
    """Tool identifiers as they appear on the wire"""
    GET_CUSTOMER_PROFILE = "getCustomerProfile"
    ANALYZE_TRANSACTIONS = "analyzeTransactions"
    ASSESS_RISK = "assessRisk"
    GENERATE_KYB_NOTE = "generateKYBNote"
    RUN_KYB = "runKYB"
    ASSESS_RISK_SCOPE_AND_ACTIONS = "assessRiskScopeAndActions"


# Tools whose dict result is flattened into the protocol result
STRUCTURED_TOOLS = frozenset({ToolName.RUN_KYB, ToolName.ASSESS_RISK_SCOPE_AND_ACTIONS})


# --- Input schemas (field names are the wire argument names) ------------------------

class ProfileInput(BaseModel):
    customerId: str = Field(min_length=1, description="Customer ID to fetch profile for")


class TransactionsInput(BaseModel):
    customerId: str = Field(min_length=1, description="Customer ID to analyze transactions for")


class RiskInput(BaseModel):
    profileSummary: str = Field(description="Customer profile summary")
    transactionSummary: str = Field(description="Transaction analysis summary")


class NoteInput(BaseModel):
    profileSummary: str = Field(description="Customer profile summary")
    transactionSummary: str = Field(description="Transaction analysis summary")
    riskAssessment: Union[str, Dict[str, Any]] = Field(
        description="Risk assessment result, as a JSON string or an object"
    )


class RunKYBInput(BaseModel):
    customerId: str = Field(min_length=1, description="Customer ID to run complete KYB workflow for")


class RiskScopeInput(BaseModel):
    customerId: str = Field(min_length=1, description="Customer ID to assess risk scope and actions for")


@dataclass(frozen=True)
class ToolEntry:
    name: ToolName
    description: str
    args_schema: Type[BaseModel]
    tool: StructuredTool

    @property
    def structured(self) -> bool:
        return self.name in STRUCTURED_TOOLS

    def definition(self) -> Dict[str, Any]:
        """Catalog entry: name, description and a JSON-schema-like input description."""
        properties = {}
        for field_name, field in self.args_schema.model_fields.items():
            properties[field_name] = {"type": "string", "description": field.description or ""}
        return {
            "name": self.name.value,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": properties,
                "required": [n for n, f in self.args_schema.model_fields.items() if f.is_required()],
            },
        }


class ToolRegistry:
    """Fixed catalog of KYB tools dispatching to a KYBConductor"""

    def __init__(self, conductor: KYBConductor):
        self.conductor = conductor
        self._entries: Dict[ToolName, ToolEntry] = {}

        self._register(
            ToolName.GET_CUSTOMER_PROFILE,
            "Fetch customer profile summary from CRM data",
            ProfileInput,
            self._get_customer_profile,
        )
        self._register(
            ToolName.ANALYZE_TRANSACTIONS,
            "Analyze transaction patterns and detect anomalies",
            TransactionsInput,
            self._analyze_transactions,
        )
        self._register(
            ToolName.ASSESS_RISK,
            "Assess risk based on profile and transactions using rules",
            RiskInput,
            self._assess_risk,
        )
        self._register(
            ToolName.GENERATE_KYB_NOTE,
            "Generate KYB narrative and action plan",
            NoteInput,
            self._generate_kyb_note,
        )
        self._register(
            ToolName.RUN_KYB,
            "Execute complete KYB Early-Risk Radar workflow. Returns structured JSON with journey_type, "
            "entity_profile, party_summary, group_context, transaction_insights, risk_assessment "
            "(band, score, triggers, reasoning), kyb_note, and recommended_actions.",
            RunKYBInput,
            self._run_kyb,
        )
        self._register(
            ToolName.ASSESS_RISK_SCOPE_AND_ACTIONS,
            "Assess risk scope and recommend specific actions for KYB review based on Companies House, "
            "Experian, CRM, transaction data, and rules configuration. Returns structured JSON with "
            "risk_scope, key_risk_drivers, risk_actions, and data_points_used.",
            RiskScopeInput,
            self._assess_risk_scope,
        )

        self._catalog = [entry.definition() for entry in self._entries.values()]
        logger.debug(f"Registered {len(self._entries)} tools: {self.names}")

    def _register(self,
                  name: ToolName,
                  description: str,
                  args_schema: Type[BaseModel],
                  handler: Callable[..., Awaitable[Any]]):
        tool = StructuredTool.from_function(
            coroutine=handler,
            name=name.value,
            description=description,
            args_schema=args_schema,
        )
        self._entries[name] = ToolEntry(name=name, description=description, args_schema=args_schema, tool=tool)

    @property
    def names(self) -> List[str]:
        return [name.value for name in self._entries]

    def list_tools(self) -> List[Dict[str, Any]]:
        """The tool catalog, identical on every call."""
        return self._catalog

    def get(self, name: Any) -> ToolEntry:
        try:
            return self._entries[ToolName(name)]
        except (ValueError, KeyError):
            raise ToolNotFoundError(f"Unknown tool: {name}", {"tool": name}) from None

    def validate_arguments(self, entry: ToolEntry, arguments: Any) -> BaseModel:
        """Check required arguments before dispatch; raises InvalidArgumentError."""
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidArgumentError("Tool arguments must be an object", {"tool": entry.name.value})

        required = entry.definition()["inputSchema"]["required"]
        missing = [n for n in required if arguments.get(n) in (None, "")]
        if missing:
            raise InvalidArgumentError(
                f"Missing required argument(s) for {entry.name.value}: {', '.join(missing)}",
                {"tool": entry.name.value, "missing": missing},
            )
        try:
            return entry.args_schema.model_validate(arguments)
        except ValidationError as e:
            raise InvalidArgumentError(
                f"Invalid arguments for {entry.name.value}: {e.errors()[0].get('msg', str(e))}",
                {"tool": entry.name.value},
            ) from e

    async def call_tool(self, name: Any, arguments: Any) -> Any:
        """Validate and dispatch a tool call; producer exceptions propagate to the caller."""
        entry = self.get(name)
        validated = self.validate_arguments(entry, arguments)
        logger.info(f"Calling tool {entry.name.value}")
        return await entry.tool.ainvoke(validated.model_dump())

    # --- Handlers ------------------------------------------------------------------

    async def _get_customer_profile(self, customerId: str) -> str:
        return await self.conductor.customer_profile(customerId)

    async def _analyze_transactions(self, customerId: str) -> str:
        return await self.conductor.transaction_analysis(customerId)

    async def _assess_risk(self, profileSummary: str, transactionSummary: str) -> str:
        return await self.conductor.assess_risk(profileSummary, transactionSummary)

    async def _generate_kyb_note(self, profileSummary: str, transactionSummary: str, riskAssessment: Any) -> str:
        return await self.conductor.kyb_note(profileSummary, transactionSummary, riskAssessment)

    async def _run_kyb(self, customerId: str) -> Dict[str, Any]:
        outcome = await self.conductor.run_kyb(customerId)
        return outcome.to_contract()

    async def _assess_risk_scope(self, customerId: str) -> Dict[str, Any]:
        return await self.conductor.risk_scope(customerId)
