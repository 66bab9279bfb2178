from __future__ import annotations

"""
Spark utilities for batch jobs.

Provides:
- get_spark_session: SparkSession configured for Delta Lake and, when the
  storage root is an object store, MinIO (S3A).
"""

import logging

from pyspark.sql import SparkSession

from apps.batch.config import get_batch_paths
from libs.config import AppConfig
from libs.observability import get_logger

logger: logging.Logger = get_logger("batch.spark")

# delta-spark 3.1 is built for Spark 3.5 / Scala 2.12 (pyproject pins pyspark < 4).
DELTA_PKG = "io.delta:delta-spark_2.12:3.1.0"
HADOOP_AWS_PKG = "org.apache.hadoop:hadoop-aws:3.3.4"
AWS_SDK_PKG = "com.amazonaws:aws-java-sdk-bundle:1.12.261"


def get_spark_session(app_name: str) -> SparkSession:
    """
    Create a SparkSession for the funnel / retention batch job.

    Uses:
        - AppConfig.storage.table_format (Delta packages only when needed)
        - AppConfig.s3.* when the storage root is ``s3a://``

    Args:
        app_name: Logical name of the Spark application.

    Returns:
        Configured SparkSession instance.
    """
    config = AppConfig.load()
    paths = get_batch_paths()

    logger.info(
        "Creating SparkSession for batch job.",
        extra={"app_name": app_name, "storage_root": paths.root},
    )

    packages = []
    builder = SparkSession.builder.appName(app_name)

    if config.storage.table_format == "delta":
        packages.append(DELTA_PKG)
        builder = builder.config(
            "spark.sql.extensions",
            "io.delta.sql.DeltaSparkSessionExtension",
        ).config(
            "spark.sql.catalog.spark_catalog",
            "org.apache.spark.sql.delta.catalog.DeltaCatalog",
        )

    if paths.is_object_store or config.source.path.startswith("s3a://"):
        s3_cfg = config.s3
        packages.extend([HADOOP_AWS_PKG, AWS_SDK_PKG])
        builder = (
            builder.config("spark.hadoop.fs.s3a.endpoint", s3_cfg.endpoint_url)
            .config("spark.hadoop.fs.s3a.access.key", s3_cfg.access_key)
            .config("spark.hadoop.fs.s3a.secret.key", s3_cfg.secret_key)
            .config("spark.hadoop.fs.s3a.path.style.access", "true")
            .config(
                "spark.hadoop.fs.s3a.impl",
                "org.apache.hadoop.fs.s3a.S3AFileSystem",
            )
        )

    if packages:
        builder = builder.config("spark.jars.packages", ",".join(packages))

    builder = (
        builder
        # Week / day boundaries are computed in UTC.
        .config("spark.sql.session.timeZone", "UTC")
        .config("spark.sql.legacy.timeParserPolicy", "CORRECTED")
        .config("spark.sql.parquet.compression.codec", "snappy")
    )

    spark = builder.getOrCreate()
    spark.sparkContext.setLogLevel("WARN")
    logger.info("SparkSession created.", extra={"app_name": app_name})
    return spark
