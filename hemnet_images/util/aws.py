"""AWS client construction with bounded timeouts."""
import boto3
from botocore.config import Config


def get_boto_config(config):
    """botocore Config applying the configured connect/read timeouts"""
    return Config(
        region_name=config.aws_region,
        connect_timeout=config.aws_timeout,
        read_timeout=config.aws_timeout,
    )


def create_client(service_name, config):
    return boto3.client(service_name, config=get_boto_config(config))


def create_resource(service_name, config):
    return boto3.resource(service_name, config=get_boto_config(config))
