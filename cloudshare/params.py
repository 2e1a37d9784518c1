#  _  __
# | |/ /___ ___ _ __  ___ _ _ ®
# | ' </ -_) -_) '_ \/ -_) '_|
# |_|\_\___\___| .__/\___|_|
#              |_|
#
# Keeper CloudShare
# Copyright 2026 Keeper Security Inc.
# Contact: ops@keepersecurity.com
#
from __future__ import annotations
import json
import logging
import os
import warnings
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse, urlunparse

from urllib3.exceptions import InsecureRequestWarning

from .error import ConfigError

DEFAULT_SERVER = 'api.apple-cloudkit.com'
DEFAULT_SHARE_TITLE = 'Card Game Project'
CONFIG_FILE_NAME = 'config.json'


class RestApiContext:
    def __init__(self, server=DEFAULT_SERVER, container='', environment='development', database='shared'):
        self.server_base = server
        self.container = container
        self.environment = environment
        self.database = database
        self.api_token = None      # type: Optional[str]
        self.web_auth_token = None    # type: Optional[str]
        self.proxies = None
        self._certificate_check = True

    def __get_server_base(self):
        return self.__server_base

    def __set_server_base(self, value):    # type: (str) -> None
        if not value.startswith('http'):
            value = 'https://' + value
        p = urlparse(value)
        self.__server_base = urlunparse((p.scheme or 'https', p.netloc, '/', None, None, None))

    @property
    def database_url(self):    # type: () -> str
        return f'{self.server_base}database/1/{self.container}/{self.environment}/{self.database}/'

    def set_proxy(self, proxy_server):
        if proxy_server:
            self.proxies = {
                'http': proxy_server,
                'https': proxy_server
            }
        else:
            self.proxies = None

    @property
    def certificate_check(self):
        return self._certificate_check

    @certificate_check.setter
    def certificate_check(self, value):
        if isinstance(value, bool):
            self._certificate_check = value
            if value:
                warnings.simplefilter('default', InsecureRequestWarning)
            else:
                warnings.simplefilter('ignore', InsecureRequestWarning)

    server_base = property(__get_server_base, __set_server_base)


class SharingParams:
    """ Global storage of data during the session """

    def __init__(self, config_filename='', config=None, server=DEFAULT_SERVER):
        self.config_filename = config_filename
        self.config = config or {}
        self.share_title = DEFAULT_SHARE_TITLE
        self.debug = False
        self.__rest_context = RestApiContext(server=server)

    def __get_rest_context(self):   # type: () -> RestApiContext
        return self.__rest_context

    def __get_server(self):
        return self.__rest_context.server_base

    def __set_server(self, value):
        self.__rest_context.server_base = value

    rest_context = property(__get_rest_context)
    server = property(__get_server, __set_server)


def load_config_properties(params):    # type: (SharingParams) -> None
    config = params.config
    context = params.rest_context
    if config.get('server'):
        params.server = config['server']
    for key in ('container', 'environment', 'database', 'api_token', 'web_auth_token'):
        value = config.get(key)
        if isinstance(value, str) and value:
            setattr(context, key, value)
    if 'proxy' in config:
        context.set_proxy(config['proxy'])
    if 'certificate_check' in config:
        context.certificate_check = config['certificate_check'] is True
    if config.get('share_title'):
        params.share_title = str(config['share_title'])
    if config.get('debug') is True:
        params.debug = True


def get_params_from_config(config_filename=None):    # type: (Optional[str]) -> SharingParams
    if os.getenv('CLOUDSHARE_DEBUG'):
        logging.getLogger().setLevel(logging.DEBUG)
        logging.info('Debug ON')

    def get_env_config():
        path = os.getenv('CLOUDSHARE_CONFIG_FILE')
        if path:
            logging.debug('Setting config file from CLOUDSHARE_CONFIG_FILE env variable %s', path)
        return path

    config_filename = config_filename or get_env_config()
    if not config_filename:
        config_filename = CONFIG_FILE_NAME
        if os.path.isfile(config_filename):
            config_filename = os.path.join(os.getcwd(), config_filename)
        else:
            config_filename = str(Path.home().joinpath('.cloudshare', CONFIG_FILE_NAME))
    else:
        config_filename = os.path.expanduser(config_filename)

    params = SharingParams()
    params.config_filename = config_filename
    if os.path.exists(config_filename):
        try:
            with open(config_filename) as config_file:
                params.config = json.load(config_file)
        except (IOError, ValueError) as e:
            logging.error('Unable to parse JSON configuration file "%s"', os.path.abspath(config_filename))
            raise ConfigError(f'Configuration file "{config_filename}": {e}') from e
        if not isinstance(params.config, dict):
            raise ConfigError(f'Configuration file "{config_filename}": JSON object expected')
        load_config_properties(params)
        if params.debug:
            logging.getLogger().setLevel(logging.DEBUG)
    else:
        logging.debug('Configuration file "%s" not found. Using defaults', config_filename)

    return params
