# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal, Optional

class Settings(BaseSettings):
    """
    Manages the application's configuration settings.
    Utilizes Pydantic's BaseSettings to allow for environment variable overrides.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="PYOMOPCODESET_"
    )

    # --- Concept Graph Store ---
    store_backend: Literal["memory", "neo4j"] = Field(
        default="memory",
        description="Which graph store answers queries: an in-memory index built from an Athena export, or Neo4j."
    )
    vocab_dir: str = Field(
        "./vocabulary",
        description="Directory holding the Athena export (CONCEPT.csv, CONCEPT_RELATIONSHIP.csv, CONCEPT_ANCESTOR.csv)."
    )
    relationship_filter: List[str] = Field(
        default=[
            "Maps to", "Is a", "RxNorm has dose form",
            "Has component", "Has property", "Has scale type", "Has system",
            "Has time aspect", "Has method", "Panel contains", "Contained in panel",
        ],
        description="CONCEPT_RELATIONSHIP rows with any other relationship_id are dropped while parsing."
    )

    # --- Neo4j Database ---
    neo4j_uri: str = Field("neo4j://localhost:7687", description="Neo4j instance URI.")
    neo4j_user: str = Field("neo4j", description="Neo4j username.")
    neo4j_password: str = Field("password", description="Neo4j password.")
    neo4j_database: str = Field("neo4j", description="Neo4j target database name.")
    load_batch_size: int = Field(
        default=10000,
        description="Rows sent per UNWIND statement when loading a vocabulary over Bolt."
    )
    neo4j_import_dir: str = Field(
        "./neo4j_import",
        description="Neo4j import directory that receives the bulk import CSVs."
    )

    # --- Query Behaviour ---
    search_result_limit: int = Field(default=75, description="Maximum rows returned by a concept search.")
    min_search_term_length: int = Field(default=2, description="Shortest accepted search term (after trimming).")
    large_codeset_threshold: int = Field(
        default=500,
        description="Saved code sets at or above this size are stored as anchors + build parameters."
    )

    # --- Optimization Settings ---
    max_parallel_processes: int = Field(
        default=4,
        description="Maximum number of parallel processes for vocabulary file parsing."
    )
    max_parallel_workers: int = Field(
        default=4,
        description="Maximum number of anchors expanded concurrently during a code set build."
    )

    # --- UMLS ---
    umls_api_key: Optional[str] = Field(None, description="UMLS API key for authenticating with the UTS API.")
    umls_base_url: str = Field("https://uts-ws.nlm.nih.gov/rest", description="UTS REST API base URL.")
    umls_timeout: float = Field(30.0, description="Timeout in seconds for UTS requests.")

    # --- HTTP Surface ---
    api_host: str = Field("127.0.0.1", description="Interface the HTTP API binds to.")
    api_port: int = Field(8000, description="Port the HTTP API listens on.")
    cors_origins: List[str] = Field(default=["*"], description="Origins allowed to call the HTTP API.")


# Instantiate a global settings object to be used throughout the application
settings = Settings()
