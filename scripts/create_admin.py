# flake8: noqa
# scripts/create_admin.py

import asyncio
from datetime import timedelta

import typer
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from labflow.core.database import get_async_session_context
from labflow.core.security import create_access_token
from labflow.domains.usr import models as usr_models
from labflow.domains.usr.models import UserRole

cli = typer.Typer()


async def create_admin_user(db: AsyncSession, user: usr_models.User) -> bool:
    """
    작업자(actor) 레코드를 생성하는 비동기 함수. 비밀번호는 외부 인증 서비스가 관리합니다.
    """
    result = await db.execute(select(usr_models.User).where(usr_models.User.username == user.username))
    if result.scalars().first():
        print(f"오류: 이미 존재하는 사용자명입니다: {user.username}")
        return False

    db.add(user)
    await db.flush()
    print(f"관리자 작업자가 성공적으로 등록되었습니다: {user.username} (id={user.id})")
    return True


@cli.command()
def main(
    username: str = typer.Option(
        ..., '--username', '-u',
        prompt="관리자 사용자명(ID)을 입력하세요",
        help="외부 인증 서비스의 사용자명(토큰 sub)입니다."
    ),
    email: str = typer.Option(None, '--email', '-e', help="관리자 이메일 주소입니다."),
    full_name: str = typer.Option("Admin", '--name', '-n', help="관리자의 이름입니다."),
    issue_token: bool = typer.Option(False, '--token', help="개발용 액세스 토큰을 함께 출력합니다."),
    token_minutes: int = typer.Option(60, '--token-minutes', help="개발용 토큰의 유효 시간(분)입니다."),
):
    """
    LabFlow LIS에 관리자(ADMIN) 작업자를 등록합니다.
    """
    user = usr_models.User(username=username, email=email, full_name=full_name, role=UserRole.ADMIN)

    async def run_creation():
        async with get_async_session_context() as db:
            return await create_admin_user(db=db, user=user)

    created = asyncio.run(run_creation())
    if not created:
        raise typer.Exit(code=1)

    if issue_token:
        token = create_access_token({"sub": username}, expires_delta=timedelta(minutes=token_minutes))
        print(f"개발용 액세스 토큰: {token}")


if __name__ == "__main__":
    cli()
