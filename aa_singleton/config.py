"""
Configuration for deploying and running a singleton.
"""
import importlib.resources
import json
import logging
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .chain import Chain

logger = logging.getLogger(__name__)

ENV_PREFIX = "AA_"


class SingletonConfig(BaseModel):
    """Constructor parameters of a singleton"""
    per_op_overhead: int = Field(22000, ge=0, alias="perOpOverhead")
    unstake_delay_blocks: int = Field(0, ge=0, alias="unstakeDelayBlocks")
    paymaster_stake: int = Field(10**18, ge=0, alias="paymasterStake")

    class Config:
        populate_by_name = True
        frozen = True

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "SingletonConfig":
        """
        Build a config from ``AA_PER_OP_OVERHEAD``, ``AA_UNSTAKE_DELAY_BLOCKS``
        and ``AA_PAYMASTER_STAKE``; unset variables keep their defaults.

        Raises:
            ValueError: If a variable is set to something that isn't an integer
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is None or raw == "":
                continue
            try:
                values[name] = int(raw, 0)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX + name.upper()} must be an integer, got {raw!r}")
        return cls(**values)

    def init_args(self):
        return self.per_op_overhead, self.unstake_delay_blocks, self.paymaster_stake


class NetworkConfig:
    """Network presets shipped with the package in ``networks.json``."""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        if cls._networks_cache is None:
            text = importlib.resources.files("aa_singleton").joinpath("networks.json").read_text()
            cls._networks_cache = json.loads(text)
        return cls._networks_cache

    @classmethod
    def get_network(cls, name: str) -> Dict[str, Any]:
        """
        Look up a network preset.

        Raises:
            ValueError: If ``name`` is not a known network
        """
        networks = cls.load_networks()
        if name not in networks:
            available = ", ".join(sorted(networks))
            raise ValueError(f"Network '{name}' not found. Available networks: {available}")
        return networks[name]

    @classmethod
    def get_chain_id(cls, name: str) -> int:
        return int(cls.get_network(name)["chainId"])

    @classmethod
    def get_singleton_config(cls, name: str) -> SingletonConfig:
        network = cls.get_network(name)
        return SingletonConfig(**{k: v for k, v in network.items() if k in (
            "perOpOverhead", "unstakeDelayBlocks", "paymasterStake"
        )})

    @classmethod
    def create_chain(cls, name: str, logger: Optional[logging.Logger] = None) -> Chain:
        """Fresh ledger with the preset's chain id and base fee."""
        network = cls.get_network(name)
        return Chain(
            chain_id=int(network["chainId"]),
            base_fee=int(network.get("baseFee", 10**9)),
            logger=logger
        )
