# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Unit tests for the template expander.
"""
import pytest
import yaml
from v2m.CONVERTERS.manifest_emitter import ManifestEmitter
from v2m.CONVERTERS.template_expander import TemplateExpander, expand, to_yaml_scalar
from v2m.MODELS.errors import ExpansionFailed
from v2m.MODELS.resource_document import ResourceKind
from v2m.MODELS.service_descriptor import GlobalDefaults, ServiceDescriptor


def _descriptor(name="inventory", **fields):
    data = {
        'name': name,
        'port': 8083,
        'image': {'repository': f'{name}-service', 'tag': '1.0.0'},
        'configEntries': {'DB_HOST': 'postgres-service'},
        'exposure': {'type': 'Internal'},
    }
    data.update(fields)
    return ServiceDescriptor.model_validate(data)


def _container(doc):
    return doc.body['spec']['template']['spec']['containers'][0]


class TestTemplateExpander:
    """Tests for TemplateExpander."""

    def test_inventory_example(self):
        """Test the single inventory service expands to three documents."""
        result = expand([_descriptor()], GlobalDefaults())
        assert result.ok
        assert [d.kind for d in result.documents] == [
            ResourceKind.CONFIG, ResourceKind.WORKLOAD, ResourceKind.EXPOSURE,
        ]

        config, workload, exposure = result.documents
        assert config.name == 'inventory-config'
        assert config.body['kind'] == 'ConfigMap'
        assert config.body['data'] == {'DB_HOST': 'postgres-service'}

        assert workload.body['kind'] == 'Deployment'
        assert workload.body['spec']['replicas'] == 1
        container = _container(workload)
        assert container['image'] == 'inventory-service:1.0.0'
        assert container['imagePullPolicy'] == 'IfNotPresent'
        assert container['ports'][0]['containerPort'] == 8083
        assert {'configMapRef': {'name': 'inventory-config'}} in container['envFrom']

        assert exposure.body['kind'] == 'Service'
        assert exposure.body['spec']['type'] == 'ClusterIP'
        assert exposure.body['spec']['ports'][0]['port'] == 8083
        assert exposure.body['spec']['ports'][0]['targetPort'] == 8083
        assert 'nodePort' not in exposure.body['spec']['ports'][0]

    def test_selector_matches_pod_labels(self):
        """Test the Service selects the Deployment's pods."""
        result = expand([_descriptor(labels={'tier': 'backend'})])
        _, workload, exposure = result.documents
        pod_labels = workload.body['spec']['template']['metadata']['labels']
        assert pod_labels == {'app': 'inventory', 'tier': 'backend'}
        assert workload.body['spec']['selector']['matchLabels'] == {'app': 'inventory'}
        assert exposure.body['spec']['selector'] == {'app': 'inventory'}

    def test_no_config_entries_means_no_config_document(self):
        """Test Config is only emitted for non-empty configEntries."""
        result = expand([_descriptor(configEntries={})])
        assert [d.kind for d in result.documents] == [ResourceKind.WORKLOAD, ResourceKind.EXPOSURE]
        assert 'envFrom' not in _container(result.documents[0])

    def test_secret_ref_is_referenced_not_copied(self):
        """Test the secret is referenced from the workload only."""
        result = expand([_descriptor(secretRef='postgres-secret')])
        config, workload, _ = result.documents
        assert _container(workload)['envFrom'] == [
            {'configMapRef': {'name': 'inventory-config'}},
            {'secretRef': {'name': 'postgres-secret'}},
        ]
        assert 'postgres-secret' not in str(config.body)

    def test_node_exposed_service(self):
        """Test NodeExposed renders a NodePort Service."""
        svc = _descriptor('api-gateway', port=8080, exposure={'type': 'NodeExposed', 'externalPort': 30080})
        exposure = expand([svc]).documents[-1]
        assert exposure.body['spec']['type'] == 'NodePort'
        assert exposure.body['spec']['ports'][0]['nodePort'] == 30080

    def test_probes(self):
        """Test liveness and readiness probes point at the health path."""
        container = _container(expand([_descriptor()]).documents[1])
        liveness = container['livenessProbe']
        readiness = container['readinessProbe']
        assert liveness['httpGet'] == {'path': '/actuator/health', 'port': 8083}
        assert readiness['httpGet'] == {'path': '/actuator/health', 'port': 8083}
        assert liveness['initialDelaySeconds'] > readiness['initialDelaySeconds'] > 0
        assert readiness['periodSeconds'] < liveness['periodSeconds']

    def test_global_image_defaults(self):
        """Test the global registry, namespace and pull policy are applied."""
        defaults = GlobalDefaults(image_registry='docker.io', image_namespace='acme', image_pull_policy='Always')
        container = _container(expand([_descriptor()], defaults).documents[1])
        assert container['image'] == 'docker.io/acme/inventory-service:1.0.0'
        assert container['imagePullPolicy'] == 'Always'

    def test_resource_override_beats_global(self):
        """Test service resources override the global defaults field by field."""
        svc = _descriptor(resources={'limitsMem': '1Gi'})
        container = _container(expand([svc], GlobalDefaults()).documents[1])
        assert container['resources'] == {
            'requests': {'cpu': '250m', 'memory': '256Mi'},
            'limits': {'cpu': '500m', 'memory': '1Gi'},
        }

    def test_namespace_on_every_document(self):
        """Test the chart namespace is set on all documents."""
        result = expand([_descriptor()], GlobalDefaults(), namespace='microservices')
        assert all(d.body['metadata']['namespace'] == 'microservices' for d in result.documents)

    def test_disabled_service_is_skipped(self):
        """Test disabled descriptors produce nothing."""
        result = expand([_descriptor(enabled=False), _descriptor('product', port=8082)])
        assert {d.service for d in result.documents} == {'product'}

    def test_registry_order_drives_document_order(self):
        """Test documents follow descriptor order, Config before Workload."""
        descriptors = [_descriptor('order', port=8084), _descriptor('inventory'), _descriptor('product', port=8082)]
        result = expand(descriptors)
        assert [(d.service, d.kind.value) for d in result.documents] == [
            ('order', 'Config'), ('order', 'Workload'), ('order', 'Exposure'),
            ('inventory', 'Config'), ('inventory', 'Workload'), ('inventory', 'Exposure'),
            ('product', 'Config'), ('product', 'Workload'), ('product', 'Exposure'),
        ]

    def test_values_keep_their_type(self):
        """Test config values that look like YAML keep being strings."""
        entries = {'FLAG': 'yes', 'ZIP': '0123', 'URL': 'a: b # c', 'QUOTE': 'say "hi" <now> & \'then\''}
        config = expand([_descriptor(configEntries=entries)]).documents[0]
        assert config.body['data'] == entries

    def test_unicode_values(self):
        """Test non-ASCII and line separator characters survive."""
        entries = {'GREETING': 'gr\u00fc\u00df dich', 'SEP': 'a\u2028b', 'EMOJI': '\U0001F680'}
        config = expand([_descriptor(configEntries=entries)]).documents[0]
        assert config.body['data'] == entries

    def test_partial_failure_is_isolated(self):
        """Test a broken descriptor does not block the others."""
        broken = _descriptor('product', port=8082, image={'tag': '1.0.0'})
        result = expand([_descriptor(), broken, _descriptor('order', port=8084)])

        assert not result.ok
        assert [(e.service, e.kind) for e in result.errors] == [('product', 'Workload')]
        assert 'image.repository' in str(result.errors[0])
        produced = [(d.service, d.kind.value) for d in result.documents]
        assert ('product', 'Workload') not in produced
        assert ('product', 'Config') in produced
        assert ('product', 'Exposure') in produced
        assert ('order', 'Workload') in produced
        with pytest.raises(ExpansionFailed) as exc:
            result.raise_for_errors()
        assert len(exc.value.errors) == 1

    def test_missing_port_fails_workload_and_exposure(self):
        """Test a missing port is reported for both kinds that need it."""
        result = expand([_descriptor(port=None, configEntries={})])
        assert result.documents == []
        assert sorted(e.kind for e in result.errors) == ['Exposure', 'Workload']

    def test_node_exposed_without_port_fails_exposure(self):
        """Test an unvalidated NodeExposed descriptor fails only its Service."""
        result = expand([_descriptor(exposure={'type': 'NodeExposed'})])
        assert [(e.service, e.kind) for e in result.errors] == [('inventory', 'Exposure')]
        assert [d.kind for d in result.documents] == [ResourceKind.CONFIG, ResourceKind.WORKLOAD]

    def test_expansion_is_deterministic(self):
        """Test identical inputs give byte-identical streams."""
        emitter = ManifestEmitter()
        expander = TemplateExpander()
        first = emitter.emit(expander.expand([_descriptor(), _descriptor('product', port=8082)]).documents)
        second = emitter.emit(expander.expand([_descriptor(), _descriptor('product', port=8082)]).documents)
        assert first == second

    def test_config_entry_order_does_not_matter(self):
        """Test reordering configEntries does not change the stream."""
        emitter = ManifestEmitter()
        one = _descriptor(configEntries={'A': '1', 'B': '2', 'a': '3'})
        two = _descriptor(configEntries={'a': '3', 'B': '2', 'A': '1'})
        assert emitter.emit(expand([one]).documents) == emitter.emit(expand([two]).documents)


def test_to_yaml_scalar():
    assert to_yaml_scalar('plain') == '"plain"'
    assert to_yaml_scalar(8080) == '8080'
    assert to_yaml_scalar('x\u2028y') == '"x\\u2028y"'
    assert yaml.safe_load(to_yaml_scalar('true')) == 'true'
