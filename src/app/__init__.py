"""
App layer: API 서버 (FastAPI).

역할:
- 작업 폴더 / SMTP 설정, 스프레드시트 미리보기, 렌더 엔진 선택
- 배치 실행 (REST + SSE 진행 이벤트)
- 배치 규칙 자체는 services/ 에, 저장/설정은 core에 위임
"""
