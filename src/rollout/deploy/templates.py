"""Starter configuration generated by `rollout deploy init`."""

from jinja2 import Template

from rollout.config.defaults import DEFAULT_APP_NAME

# Jinja2 template for the starter deployment configuration
DEPLOY_CONFIG_TEMPLATE = """\
# Rollout deployment configuration for {{ app_name }}
#
# Deploy with:  rollout deploy run production

# Settings shared by every environment and cluster
defaults:
  runtime_version: "{{ runtime_version }}"  # Node.js version installed via nvm
  build_command: "npm run build"
  install_command: "npm ci --production"
  keep_releases: 5                # Releases kept on each host
  supervisor:
    instances: 1                  # pm2 instances per service (0 = one per core)
    max_memory_restart: "500M"
    env:
      NODE_ENV: production

environments:
  production:
    ssh:
      host: your-server.com
      username: deploy
      # Use key_file or password (key_file recommended)
      key_file: ~/.ssh/id_rsa
      port: 22
    paths:
      deploy_to: /var/www/{{ app_name }}
      current: /var/www/{{ app_name }}/current
      releases: /var/www/{{ app_name }}/releases
      shared: /var/www/{{ app_name }}/shared
    services:
      - name: api
        script: dist/main.js      # Relative to the release directory
        port: 3000
        env:
          PORT: 3000
          NODE_ENV: production
      - name: worker
        script: dist/worker.js
        env:
          NODE_ENV: production
          WORKER_CONCURRENCY: 5
    # Hook commands run on the host; write $$ for a literal dollar sign,
    # e.g. echo $${HOME} leaves HOME for the remote shell to expand
    hooks:
      before_deploy: []
      after_deploy:
        - pm2 save
        - sudo nginx -s reload

  staging:
    ssh:
      host: staging-server.com
      username: deploy
      key_file: ~/.ssh/id_rsa
    paths:
      deploy_to: /var/www/{{ app_name }}-staging
      current: /var/www/{{ app_name }}-staging/current
      releases: /var/www/{{ app_name }}-staging/releases
      shared: /var/www/{{ app_name }}-staging/shared
    services:
      - name: staging-api
        script: dist/main.js
        port: 3001
        env:
          PORT: 3001
          NODE_ENV: staging

# Multi-host targets, deployed in parallel
clusters:
  production-cluster:
    environment: production       # Supplies the services and hooks
    servers:
{%- for server in cluster_servers %}
      - host: {{ server.host }}
        username: deploy
        key_file: ~/.ssh/id_rsa
        role: {{ server.role }}
{%- endfor %}
    services_by_role:
      web: [api]
      worker: [worker]
"""

_CLUSTER_SERVERS = [
    {"host": "web1.example.com", "role": "web"},
    {"host": "web2.example.com", "role": "web"},
    {"host": "worker1.example.com", "role": "worker"},
]


def render_config_template(
    app_name: str = DEFAULT_APP_NAME, runtime_version: str = "20"
) -> str:
    """Render the starter deployment configuration.

    Args:
        app_name: Application name used for the remote directories
        runtime_version: Node.js version written into the defaults

    Returns:
        YAML document that loads as a valid DeploymentConfig
    """
    template = Template(DEPLOY_CONFIG_TEMPLATE, keep_trailing_newline=True)
    return template.render(
        app_name=app_name,
        runtime_version=runtime_version,
        cluster_servers=_CLUSTER_SERVERS,
    )
