from .settings import config, Config, DevelopmentConfig, TestingConfig, ProductionConfig

__all__ = ['config', 'Config', 'DevelopmentConfig', 'TestingConfig', 'ProductionConfig']
