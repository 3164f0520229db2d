"""
Cycle Planner - Flask Application
周期フェーズに合わせたタスク配置の JSON API
"""
import logging
from typing import Optional

from flask import Flask, jsonify, request

from cycle_planner.config import PlannerConfig, build_store, setup_logger
from cycle_planner.models import ValidationError
from cycle_planner.planner import PlannerService
from cycle_planner.store import CycleNotFoundError, RecordStore, StoreError, TaskNotFoundError

logger = logging.getLogger(__name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON オブジェクトを送信してください")
    return data


def create_app(store: Optional[RecordStore] = None, config: Optional[PlannerConfig] = None) -> Flask:
    """アプリケーションを作成（テストではストアを差し替える）"""
    config = config or PlannerConfig.from_env()
    app = Flask(__name__)
    app.secret_key = config.secret_key
    planner = PlannerService(store if store is not None else build_store(config))
    app.extensions["planner"] = planner

    # ============ PHASE / CYCLES ============

    @app.route('/api/phase')
    async def phase():
        """指定日のフェーズ"""
        return jsonify(await planner.get_phase(request.args.get('date')))

    @app.route('/api/cycles', methods=['GET'])
    async def list_cycles():
        cycles = await planner.list_cycles()
        return jsonify([c.to_dict() for c in cycles])

    @app.route('/api/cycles', methods=['POST'])
    async def log_cycle():
        """生理の開始を記録"""
        data = _json_body()
        if not data.get('start_date'):
            raise ValidationError("start_date は必須です")
        result = await planner.log_cycle(data['start_date'], data.get('end_date'))
        return jsonify(result.to_dict()), 201

    @app.route('/api/cycles/stats')
    async def cycle_stats():
        stats = await planner.get_cycle_stats()
        return jsonify(stats.to_dict())

    # ============ TASKS ============

    @app.route('/api/tasks', methods=['GET'])
    async def list_tasks():
        tasks = await planner.list_tasks()
        return jsonify([t.to_dict() for t in tasks])

    @app.route('/api/tasks', methods=['POST'])
    async def create_task():
        """タスク作成（日付がなければ自動配置）"""
        task, info = await planner.create_task(_json_body())
        return jsonify({
            'task': task.to_dict(),
            'schedule': info.to_dict() if info else None,
        }), 201

    @app.route('/api/tasks/<task_id>/move', methods=['PATCH'])
    async def move_task(task_id):
        data = _json_body()
        if not data.get('scheduled_date'):
            raise ValidationError("scheduled_date は必須です")
        task = await planner.move_task(task_id, data['scheduled_date'])
        return jsonify(task.to_dict())

    @app.route('/api/tasks/<task_id>/complete', methods=['POST'])
    async def complete_task(task_id):
        task = await planner.complete_task(task_id)
        return jsonify(task.to_dict())

    @app.route('/api/tasks/<task_id>/split', methods=['POST'])
    async def split_task(task_id):
        """タスク分割"""
        parts = _json_body().get('tasks') or []
        if not isinstance(parts, list) or not all(isinstance(p, dict) for p in parts):
            raise ValidationError("tasks はオブジェクトのリストで指定してください")
        created = await planner.split_task(task_id, parts)
        return jsonify([t.to_dict() for t in created]), 201

    @app.route('/api/tasks/<task_id>', methods=['DELETE'])
    async def delete_task(task_id):
        await planner.delete_task(task_id)
        return '', 204

    @app.route('/api/tasks/<task_id>/history')
    async def task_history(task_id):
        entries = await planner.get_history(task_id)
        return jsonify([e.to_dict() for e in entries])

    # ============ SUGGESTIONS ============

    @app.route('/api/warnings')
    async def warnings():
        """負荷の警告"""
        found = await planner.get_warnings()
        return jsonify([w.to_dict() for w in found])

    @app.route('/api/reschedule')
    async def check_reschedule():
        result = await planner.check_reschedule()
        return jsonify(result.to_dict())

    @app.route('/api/reschedule/apply', methods=['POST'])
    async def apply_reschedule():
        """提案の承認（task_ids 省略時はすべて）"""
        task_ids = _json_body().get('task_ids')
        if task_ids is not None and not isinstance(task_ids, list):
            raise ValidationError("task_ids はリストで指定してください")
        rescheduled = await planner.apply_suggestions(task_ids)
        return jsonify([t.to_dict() for t in rescheduled])

    @app.route('/api/pull-forward')
    async def pull_forward():
        groups = await planner.get_pull_forward()
        return jsonify([g.to_dict() for g in groups])

    @app.route('/api/pull-forward/apply', methods=['POST'])
    async def apply_pull_forward():
        data = _json_body()
        if not data.get('task_id'):
            raise ValidationError("task_id は必須です")
        task = await planner.apply_pull_forward(data['task_id'], data.get('scheduled_date'))
        return jsonify(task.to_dict())

    # ============ PREFERENCES ============

    @app.route('/api/preferences', methods=['GET'])
    async def get_preferences():
        preferences = await planner.get_preferences()
        return jsonify(preferences.to_dict())

    @app.route('/api/preferences', methods=['PUT'])
    async def update_preferences():
        preferences = await planner.update_preferences(_json_body())
        return jsonify(preferences.to_dict())

    # ============ ERROR HANDLERS ============

    @app.errorhandler(ValidationError)
    def validation_error(e):
        return jsonify({'error': str(e)}), 400

    @app.errorhandler(TaskNotFoundError)
    @app.errorhandler(CycleNotFoundError)
    def not_found_record(e):
        return jsonify({'error': str(e)}), 404

    @app.errorhandler(StoreError)
    def store_error(e):
        logger.error("ストアエラー: %s", e)
        return jsonify({'error': str(e)}), 502

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    return app


# ============ MAIN ============

if __name__ == '__main__':
    config = PlannerConfig.from_env()
    setup_logger(config.log_level, config.log_file)
    app = create_app(config=config)
    app.run(host='0.0.0.0', port=config.port, debug=config.debug)
